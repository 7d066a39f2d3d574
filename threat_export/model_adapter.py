"""Threat Dragon V2 diagram -> render graph adapter for the diagram widget."""

import copy
import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from .constants import (
    DEFAULT_LABEL_DISTANCE,
    FALLBACK_RENDER_TYPE,
    RENDER_TYPE_REMAP,
    SEMANTIC_PREFIX,
    SHAPE_RENDER_TYPES,
)
from .schemas import (
    Cell,
    CellData,
    Diagram,
    EdgeCell,
    EdgeEnd,
    NodeCell,
    Point,
    RenderEdge,
    RenderEndpoint,
    RenderGraph,
    RenderLabel,
    RenderNode,
    Size,
    parse_cell,
)

logger = logging.getLogger(__name__)

RenderCell = Union[RenderNode, RenderEdge]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _text(value: Any) -> str:
    """``value`` if it is a non-blank string, else an empty string."""
    return value if isinstance(value, str) and value.strip() else ''


def _slot_text(attrs: Any, key: str) -> Any:
    """``attrs[key]["text"]`` when both levels are mappings."""
    if not isinstance(attrs, dict):
        return None
    slot = attrs.get(key)
    return slot.get('text') if isinstance(slot, dict) else None


def _cell_data(cell: Any) -> Optional[CellData]:
    data = getattr(cell, 'data', None)
    return data if isinstance(data, CellData) else None


def resolve_render_type(shape: Optional[str], data_type: Optional[str]) -> str:
    """
    Rendering type of a cell.

    A semantic ``tm.*`` data type wins; boundary boxes render as boundaries and
    text blocks as plain processes. Cells without one fall back to their shape.
    """
    if isinstance(data_type, str) and data_type.startswith(SEMANTIC_PREFIX):
        return RENDER_TYPE_REMAP.get(data_type, data_type)
    if not isinstance(shape, str):
        return FALLBACK_RENDER_TYPE
    return SHAPE_RENDER_TYPES.get(shape, FALLBACK_RENDER_TYPE)


def cell_display_name(cell: Any) -> str:
    data = _cell_data(cell)
    attrs = getattr(cell, 'attrs', None)
    return (
        _text(data.name if data else None)
        or _text(_slot_text(attrs, 'text'))
        or _text(_slot_text(attrs, 'label'))
    )


def normalize_attrs(cell: Union[NodeCell, EdgeCell]) -> dict:
    """Copy of the cell attrs with ``text.text`` filled in unless already set."""
    attrs = copy.deepcopy(cell.attrs) if isinstance(cell.attrs, dict) else {}
    text = attrs.get('text')
    if not isinstance(text, dict):
        text = {}
        attrs['text'] = text
    current = text.get('text')
    if not (isinstance(current, str) and current):
        text['text'] = cell_display_name(cell)
    return attrs


def map_endpoint(end: Any) -> RenderEndpoint:
    if isinstance(end, EdgeEnd):
        # boundary curves use free points
        if _is_number(end.x) and _is_number(end.y):
            return RenderEndpoint(x=end.x, y=end.y)
        if isinstance(end.cell, str):
            if isinstance(end.port, str):
                return RenderEndpoint(id=end.cell, port=end.port)
            return RenderEndpoint(id=end.cell)
    return RenderEndpoint()


def map_labels(labels: Any) -> list[RenderLabel]:
    if not isinstance(labels, list):
        return []
    mapped = []
    for label in labels:
        attrs = getattr(label, 'attrs', None)
        if not isinstance(attrs, dict):
            continue
        text = _text(_slot_text(attrs, 'labelText')) or _text(_slot_text(attrs, 'label'))
        if not text:
            continue
        position = getattr(label, 'position', None)
        distance = position.get('distance') if isinstance(position, dict) else None
        mapped.append(RenderLabel(
            position=distance if _is_number(distance) else DEFAULT_LABEL_DISTANCE,
            attrs={'text': {'text': text}},
        ))
    return mapped


class ModelAdapter:
    """Maps the cells of one diagram onto render records."""

    FLOW_TYPE = 'tm.Flow'

    def __init__(self, diagram: Diagram):
        self.diagram = diagram

    @staticmethod
    def _data(cell: Union[NodeCell, EdgeCell]) -> CellData:
        return _cell_data(cell) or CellData()

    def _base(self, cell: Union[NodeCell, EdgeCell]) -> dict:
        return {
            'id': cell.id,
            'type': resolve_render_type(cell.shape, self._data(cell).type),
            'z': cell.zIndex if _is_number(cell.zIndex) else 0,
            'attrs': normalize_attrs(cell),
        }

    def _domain_flags(self, cell: Union[NodeCell, EdgeCell]) -> dict:
        data = self._data(cell)
        flags = {
            'description': data.description if isinstance(data.description, str) else '',
            'hasOpenThreats': bool(data.hasOpenThreats),
            'outOfScope': bool(data.outOfScope),
            'reasonOutOfScope': data.reasonOutOfScope if isinstance(data.reasonOutOfScope, str) else '',
            'isTrustBoundary': bool(data.isTrustBoundary),
            'threats': [threat.model_copy(deep=True) for threat in data.threat_records()],
        }
        if isinstance(cell.visible, bool):
            flags['visible'] = cell.visible
        return flags

    def _node(self, cell: NodeCell) -> RenderNode:
        return RenderNode(
            **self._base(cell),
            position=Point(x=cell.position.x, y=cell.position.y),
            size=Size(width=cell.size.width, height=cell.size.height),
            **self._domain_flags(cell),
        )

    def _edge(self, cell: EdgeCell) -> RenderEdge:
        vertices = cell.vertices if isinstance(cell.vertices, list) else []
        edge = {
            **self._base(cell),
            'source': map_endpoint(cell.source),
            'target': map_endpoint(cell.target),
            'vertices': [Point(x=v.x, y=v.y) for v in vertices if isinstance(v, Point)],
            **self._domain_flags(cell),
        }
        if isinstance(cell.connector, str):
            edge['smooth'] = cell.connector == 'smooth'

        labels = map_labels(cell.labels)
        if labels:
            edge['labels'] = labels

        data = self._data(cell)
        if data.type == self.FLOW_TYPE:
            edge.update(
                isBidirectional=bool(data.isBidirectional),
                isEncrypted=bool(data.isEncrypted),
                isPublicNetwork=bool(data.isPublicNetwork),
                protocol=data.protocol if isinstance(data.protocol, str) else '',
            )
        return RenderEdge(**edge)

    def render_cell(self, cell: Cell) -> Optional[RenderCell]:
        """Render record for one cell, ``None`` when it has no usable geometry."""
        try:
            if isinstance(cell, NodeCell):
                return self._node(cell)
            if isinstance(cell, EdgeCell) and (cell.source is not None or cell.target is not None):
                return self._edge(cell)
        except ValidationError as e:
            logger.warning("Dropping cell %r from render graph: %s", cell.id, e)
            return None
        logger.debug("Cell %r has no geometry, not rendered", getattr(cell, 'id', None))
        return None

    def to_render_graph(self) -> RenderGraph:
        rendered = (self.render_cell(cell) for cell in self.diagram.cells)
        return RenderGraph(cells=[c for c in rendered if c is not None])


def to_render_graph(diagram: Optional[Diagram]) -> RenderGraph:
    """Render graph for a diagram; an absent diagram renders as an empty graph."""
    if diagram is None:
        return RenderGraph(cells=[])
    return ModelAdapter(diagram).to_render_graph()


def selectable(render_cell: RenderCell) -> bool:
    """Trust boundaries are drawn but cannot be picked as a component."""
    return render_cell.type != 'tm.Boundary'


def _flow_label(cell: Any) -> str:
    labels = getattr(cell, 'labels', None)
    if not isinstance(labels, list) or not labels:
        return ''
    attrs = getattr(labels[0], 'attrs', None)
    return _text(_slot_text(attrs, 'labelText')) or _text(_slot_text(attrs, 'label'))


def component_name(cell: Optional[Cell]) -> str:
    """Name shown for a selected component, e.g. ``"Process: Web API"``."""
    if cell is None:
        return ''
    data = _cell_data(cell)
    data_type = data.type if data and isinstance(data.type, str) else ''
    prefix = data_type[len(SEMANTIC_PREFIX):] if data_type.startswith(SEMANTIC_PREFIX) else data_type

    name = cell_display_name(cell)
    if data_type == ModelAdapter.FLOW_TYPE:
        name = _flow_label(cell) or name
    return f'{prefix}: {name}' if name else prefix


REIMPORT_SHAPES = {
    'tm.Process': 'process',
    'tm.Actor': 'actor',
    'tm.Store': 'store',
    'tm.Flow': 'flow',
}


def _reimport_endpoint(end: RenderEndpoint) -> dict:
    if end.id is not None:
        return {'cell': end.id, 'port': end.port} if end.port is not None else {'cell': end.id}
    if end.x is not None and end.y is not None:
        return {'x': end.x, 'y': end.y}
    return {}


def reimport_cell(render_cell: RenderCell) -> Cell:
    """Turn a render record back into a document cell."""
    is_edge = isinstance(render_cell, RenderEdge)
    if render_cell.type == 'tm.Boundary':
        shape = 'trust-boundary-curve' if is_edge else 'trust-boundary-box'
    else:
        shape = REIMPORT_SHAPES.get(render_cell.type, 'process')

    data = {
        'type': render_cell.type,
        'name': _text(_slot_text(render_cell.attrs, 'text')),
        'description': render_cell.description,
        'hasOpenThreats': render_cell.hasOpenThreats,
        'outOfScope': render_cell.outOfScope,
        'reasonOutOfScope': render_cell.reasonOutOfScope,
        'isTrustBoundary': render_cell.isTrustBoundary,
        'threats': [t.model_dump(mode='json', exclude_unset=True) for t in render_cell.threats],
    }
    raw = {
        'id': render_cell.id,
        'shape': shape,
        'zIndex': render_cell.z,
        'attrs': copy.deepcopy(render_cell.attrs),
        'data': data,
    }
    if render_cell.visible is not None:
        raw['visible'] = render_cell.visible

    if is_edge:
        raw['source'] = _reimport_endpoint(render_cell.source)
        raw['target'] = _reimport_endpoint(render_cell.target)
        raw['vertices'] = [{'x': v.x, 'y': v.y} for v in render_cell.vertices]
        if render_cell.smooth is not None:
            raw['connector'] = 'smooth' if render_cell.smooth else 'normal'
        if render_cell.labels:
            raw['labels'] = [
                {'attrs': {'labelText': label.attrs['text']}, 'position': {'distance': label.position}}
                for label in render_cell.labels
            ]
        if render_cell.type == ModelAdapter.FLOW_TYPE:
            data.update(
                isBidirectional=render_cell.isBidirectional,
                isEncrypted=render_cell.isEncrypted,
                isPublicNetwork=render_cell.isPublicNetwork,
                protocol=render_cell.protocol,
            )
    else:
        raw['position'] = {'x': render_cell.position.x, 'y': render_cell.position.y}
        raw['size'] = {'width': render_cell.size.width, 'height': render_cell.size.height}

    return parse_cell(raw)
