"""Pydantic models for Threat Dragon V2 documents, gameplay state and render graphs."""

import logging
from typing import Annotated, Any, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

logger = logging.getLogger(__name__)

Number = Union[int, float]


def lenient(tp):
    """``tp`` when the value validates as one, otherwise the value exactly as given."""
    return Annotated[Union[tp, Any], Field(union_mode='left_to_right')]


# Semantic fields of a document never fail a cell or the document
Text = lenient(StrictStr)
Flag = lenient(StrictBool)
Identifier = lenient(Union[StrictStr, StrictInt])
Count = lenient(Union[StrictInt, StrictFloat])


class FlexibleModel(BaseModel):
    """Base for document models: unknown fields are kept, never rejected."""
    model_config = ConfigDict(extra='allow')


# ============================================================================
# Document
# ============================================================================


class Threat(FlexibleModel):
    """A threat recorded against a diagram cell."""
    id: Identifier = None
    threatId: Identifier = None
    number: Count = None
    title: Text = None
    status: Text = None  # NA, Open, Mitigated, ...
    severity: Text = None
    type: Text = None  # category code of the methodology
    description: Text = None
    mitigation: Text = None
    modelType: Text = None
    owner: Text = None
    game: Text = None


class CellData(FlexibleModel):
    """Semantic payload of a cell, tagged by ``type`` (tm.Process, tm.Flow, ...)."""
    type: Text = None
    name: Text = None
    description: Text = None
    outOfScope: Flag = None
    reasonOutOfScope: Text = None
    hasOpenThreats: Flag = None
    isTrustBoundary: Flag = None
    # entries that are not threat objects, or a non-list value, are kept as given
    threats: lenient(list[lenient(Threat)]) = Field(default_factory=list)

    # tm.Flow only
    isBidirectional: Flag = None
    isEncrypted: Flag = None
    isPublicNetwork: Flag = None
    protocol: Text = None

    def threat_records(self) -> list[Threat]:
        """The stored threats that are threat objects."""
        if not isinstance(self.threats, list):
            return []
        return [threat for threat in self.threats if isinstance(threat, Threat)]


class Point(FlexibleModel):
    x: Number
    y: Number


class Size(FlexibleModel):
    width: Number
    height: Number


class EdgeEnd(FlexibleModel):
    """Edge endpoint: bound to a node (``cell``/``port``) or a free point (``x``/``y``)."""
    cell: Optional[str] = None
    port: Optional[str] = None
    x: Optional[Number] = None
    y: Optional[Number] = None


class EdgeLabel(FlexibleModel):
    attrs: Optional[Any] = None
    position: Optional[Any] = None


class DiagramCell(FlexibleModel):
    """Fields every classified cell carries."""
    kind: ClassVar[str] = 'cell'

    id: Identifier = None
    shape: Text = None
    zIndex: Count = None
    attrs: lenient(dict[str, Any]) = None
    visible: Flag = None
    data: lenient(CellData) = Field(default_factory=CellData)


class NodeCell(DiagramCell):
    """An actor, process, store, boundary box or text block."""
    kind: ClassVar[str] = 'node'

    position: Point
    size: Size


class EdgeCell(DiagramCell):
    """A flow or a trust boundary curve."""
    kind: ClassVar[str] = 'edge'

    source: Optional[Union[EdgeEnd, Any]] = Field(default=None, union_mode='left_to_right')
    target: Optional[Union[EdgeEnd, Any]] = Field(default=None, union_mode='left_to_right')
    vertices: lenient(list[lenient(Point)]) = None
    connector: Optional[Any] = None
    labels: lenient(list[lenient(EdgeLabel)]) = None


class OpaqueCell(FlexibleModel):
    """A cell with no usable geometry; kept for export, never rendered."""
    kind: ClassVar[str] = 'opaque'

    id: Optional[Any] = None
    data: lenient(CellData) = None


Cell = Union[NodeCell, EdgeCell, OpaqueCell]


def parse_cell(raw: dict) -> Cell:
    """
    Decide the cell variant from its geometry and validate it.

    Only the geometry can fail a node or an edge; every other field keeps the
    value it was given when that value has an unexpected type.
    """
    if raw.get('position') is not None and raw.get('size') is not None:
        model = NodeCell
    elif raw.get('source') is not None or raw.get('target') is not None:
        model = EdgeCell
    else:
        return OpaqueCell.model_validate(raw)
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            "Cell %r kept as opaque, %s validation failed: %s",
            raw.get('id'), model.kind, e.error_count(),
        )
        return OpaqueCell.model_validate(raw)


class Diagram(FlexibleModel):
    """One diagram of the document."""
    id: Identifier = None
    title: Text = None
    diagramType: Text = None
    description: Text = None
    thumbnail: Text = None
    version: Text = None
    cells: list[Cell] = Field(default_factory=list)

    @field_validator('cells', mode='before')
    @classmethod
    def classify_cells(cls, v: Any) -> list:
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError('cells must be a list')
        cells = []
        for raw in v:
            if isinstance(raw, dict):
                cells.append(parse_cell(raw))
            elif isinstance(raw, (NodeCell, EdgeCell, OpaqueCell)):
                cells.append(raw)
            else:
                logger.warning("Dropping cell that is not an object: %r", raw)
        return cells

    def find_cell(self, cell_id: Any) -> Optional[Cell]:
        return next((c for c in self.cells if c.id == cell_id), None)


class Summary(FlexibleModel):
    title: Text = ''
    owner: Text = None
    description: Text = None
    id: Identifier = None


class Detail(FlexibleModel):
    contributors: lenient(list[Any]) = Field(default_factory=list)
    diagrams: list[Diagram] = Field(default_factory=list)
    diagramTop: Count = None
    threatTop: Count = None
    reviewer: Text = None


class Document(FlexibleModel):
    """A Threat Dragon V2 threat model document."""
    version: Text = None
    summary: Summary = Field(default_factory=Summary)
    detail: Detail = Field(default_factory=Detail)

    def iter_threats(self):
        for diagram in self.detail.diagrams:
            for cell in diagram.cells:
                if isinstance(cell.data, CellData):
                    yield from cell.data.threat_records()

    def to_json_dict(self) -> dict:
        return self.model_dump(mode='json', exclude_unset=True)


# ============================================================================
# Gameplay state
# ============================================================================


class IdentifiedThreat(FlexibleModel):
    """Partial threat recorded during play; ``owner`` is a player index string."""
    model_config = ConfigDict(extra='allow', coerce_numbers_to_str=True)

    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    mitigation: Optional[str] = None
    severity: Optional[str] = None
    type: Optional[str] = None
    owner: Optional[str] = None


# diagram position -> component id -> threat id -> threat
IdentifiedThreats = list[Optional[dict[str, Optional[dict[str, IdentifiedThreat]]]]]


class GameState(FlexibleModel):
    """The part of the card game state the export reads."""
    gameMode: Optional[str] = None
    modelType: Optional[str] = None
    identifiedThreats: IdentifiedThreats = Field(default_factory=list)


class MatchState(FlexibleModel):
    G: GameState = Field(default_factory=GameState)


class Player(FlexibleModel):
    id: Optional[int] = None
    name: Optional[str] = None


class MatchMetadata(FlexibleModel):
    players: Union[list[Optional[Player]], dict[str, Player]] = Field(default_factory=list)


class Match(FlexibleModel):
    """A match as returned by a store; only the projected parts are populated."""
    state: Optional[MatchState] = None
    metadata: Optional[MatchMetadata] = None
    model: Optional[Any] = None


# ============================================================================
# Render graph
# ============================================================================


class RenderEndpoint(BaseModel):
    id: Optional[str] = None
    port: Optional[str] = None
    x: Optional[Number] = None
    y: Optional[Number] = None


class RenderLabel(BaseModel):
    position: Number
    attrs: dict[str, Any]


class RenderCell(BaseModel):
    id: Union[str, int]
    type: str
    z: Number = 0
    attrs: dict[str, Any] = Field(default_factory=dict)
    description: str = ''
    hasOpenThreats: bool = False
    outOfScope: bool = False
    reasonOutOfScope: str = ''
    isTrustBoundary: bool = False
    threats: list[Threat] = Field(default_factory=list)
    visible: Optional[bool] = None


class RenderNode(RenderCell):
    position: Point
    size: Size


class RenderEdge(RenderCell):
    source: RenderEndpoint = Field(default_factory=RenderEndpoint)
    target: RenderEndpoint = Field(default_factory=RenderEndpoint)
    vertices: list[Point] = Field(default_factory=list)
    smooth: Optional[bool] = None
    labels: Optional[list[RenderLabel]] = None
    isBidirectional: Optional[bool] = None
    isEncrypted: Optional[bool] = None
    isPublicNetwork: Optional[bool] = None
    protocol: Optional[str] = None


class RenderGraph(BaseModel):
    """What the diagram widget draws and selects against."""
    cells: list[Union[RenderNode, RenderEdge]] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode='json', exclude_unset=True)
