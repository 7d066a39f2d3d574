"""Reconcile threats found during play with the threats stored in a document."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

from .constants import (
    DEFAULT_GAME_SEVERITY,
    STATUS_NOT_APPLICABLE,
    STATUS_OPEN,
    is_suit,
    methodology_name,
    suit_display_name,
)
from .events import ExportEvent, Observer, emit
from .parser import load_identified_threats
from .schemas import CellData, Document, GameState, IdentifiedThreat, Threat

logger = logging.getLogger(__name__)

Roster = Sequence[Optional[str]]

_PLAYER_INDEX = re.compile(r'\s*([+-]?[0-9]+)')


@dataclass(frozen=True)
class ThreatKey:
    """Position of a gameplay threat: diagram slot, component cell id, threat id."""
    diagram: int
    component: str
    threat: str


class ThreatIndex:
    """
    Threats identified during play, keyed by (diagram, component, threat).

    A diagram slot can be absent (nothing was ever recorded for it) or present
    with no threats; ``has_diagram`` tells the two apart. Iteration follows
    diagram position, then the order components were first seen, then the
    order threats were added, which is the discovery order.
    """

    def __init__(self):
        self._threats: dict[ThreatKey, IdentifiedThreat] = {}
        self._diagrams: set[int] = set()
        self._components: dict[tuple[int, str], int] = {}

    @classmethod
    def from_identified(cls, identified: Any) -> 'ThreatIndex':
        """Build from the sparse ``identifiedThreats`` list of the game state."""
        index = cls()
        for diagram, components in enumerate(load_identified_threats(identified)):
            if components is None:
                continue
            index.add_diagram(diagram)
            for component, threats in components.items():
                if threats is None:
                    continue
                index.add_component(diagram, component)
                for threat_id, threat in threats.items():
                    index.add(ThreatKey(diagram, component, threat_id), threat)
        return index

    @classmethod
    def from_game_state(cls, state: GameState) -> 'ThreatIndex':
        return cls.from_identified(state.identifiedThreats)

    def add_diagram(self, diagram: int) -> None:
        self._diagrams.add(diagram)

    def add_component(self, diagram: int, component: str) -> None:
        self.add_diagram(diagram)
        self._components.setdefault((diagram, component), len(self._components))

    def add(self, key: ThreatKey, threat: IdentifiedThreat) -> None:
        self.add_component(key.diagram, key.component)
        self._threats[key] = threat

    def has_diagram(self, diagram: int) -> bool:
        return diagram in self._diagrams

    def diagrams(self) -> list[int]:
        return sorted(self._diagrams)

    def components(self, diagram: int) -> list[str]:
        found = [(rank, c) for (d, c), rank in self._components.items() if d == diagram]
        return [c for _, c in sorted(found)]

    def threats_for(self, diagram: int, component: str) -> list[tuple[ThreatKey, IdentifiedThreat]]:
        return [
            (key, threat) for key, threat in self._threats.items()
            if key.diagram == diagram and key.component == component
        ]

    def items(self) -> Iterator[tuple[ThreatKey, IdentifiedThreat]]:
        for diagram in self.diagrams():
            for component in self.components(diagram):
                yield from self.threats_for(diagram, component)

    def __len__(self) -> int:
        return len(self._threats)


def _default(value: Optional[str], fallback: str) -> str:
    return fallback if value is None else value


def _drop_none(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


def resolve_owner(owner: Optional[str], roster: Roster) -> Optional[str]:
    """
    Player name for a player-index string, ``None`` if it does not resolve.

    The index is the leading run of ASCII digits, so ``"1abc"`` is player 1.
    """
    if owner is None:
        return None
    found = _PLAYER_INDEX.match(str(owner))
    if found is None:
        return None
    index = int(found.group(1))
    if 0 <= index < len(roster):
        return roster[index]
    return None


def game_threat(threat: IdentifiedThreat, roster: Roster) -> Threat:
    """A gameplay threat as a report entry; not yet part of any document."""
    record = threat.model_dump(exclude_unset=True)
    record.update(
        owner=resolve_owner(threat.owner, roster),
        status=STATUS_NOT_APPLICABLE,
        description=_default(threat.description, ''),
        mitigation=_default(threat.mitigation, ''),
        severity=_default(threat.severity, DEFAULT_GAME_SEVERITY),
        title=_default(threat.title, ''),
        type=_default(threat.type, ''),
    )
    return Threat.model_validate(_drop_none(record))


def flatten(index: ThreatIndex, roster: Roster, document: Optional[Document] = None) -> list[Threat]:
    """
    All threats for a report: gameplay threats in discovery order, followed by
    the threats already stored on the document's cells.
    """
    threats = [game_threat(threat, roster) for _, threat in index.items()]
    if document is not None:
        threats.extend(threat.model_copy(deep=True) for threat in document.iter_threats())
    return threats


def component_threats(index: ThreatIndex, diagram: int, component: str, roster: Roster) -> list[Threat]:
    """Threats of one component for display, most recently identified first."""
    threats = [game_threat(threat, roster) for _, threat in index.threats_for(diagram, component)]
    threats.reverse()
    return threats


def merged_threat(
    threat: IdentifiedThreat,
    roster: Roster,
    game_mode: Optional[str],
    match_id: Optional[str],
) -> Threat:
    return Threat(**_drop_none({
        'description': _default(threat.description, ''),
        'mitigation': _default(threat.mitigation, ''),
        'modelType': methodology_name(game_mode),
        'severity': _default(threat.severity, ''),
        'status': STATUS_OPEN,
        'title': _default(threat.title, ''),
        'type': suit_display_name(game_mode, threat.type),
        'owner': resolve_owner(threat.owner, roster),
        'id': threat.id,
        'game': match_id,
    }))


def merge_into_document(
    document: Document,
    index: ThreatIndex,
    roster: Roster,
    game_mode: Optional[str] = None,
    match_id: Optional[str] = None,
    observer: Optional[Observer] = None,
) -> Document:
    """
    Copy of ``document`` with the gameplay threats appended to their cells.

    Diagrams are matched by position and cells by id. Anything that no longer
    exists in the document is skipped. ``hasOpenThreats`` is only ever raised.
    """
    merged = document.model_copy(deep=True)
    diagrams = merged.detail.diagrams

    for diagram_index in index.diagrams():
        if diagram_index >= len(diagrams):
            emit(observer, ExportEvent(
                name='merge.skipped', match_id=match_id,
                message=f'Diagram {diagram_index} no longer exists',
                detail={'diagram': diagram_index},
            ))
            continue
        diagram = diagrams[diagram_index]

        for component in index.components(diagram_index):
            cell = diagram.find_cell(component)
            if cell is None or not isinstance(cell.data, CellData):
                emit(observer, ExportEvent(
                    name='merge.skipped', match_id=match_id,
                    message=f'Component {component} not found in diagram {diagram_index}',
                    detail={'diagram': diagram_index, 'component': component},
                ))
                continue

            additions = [
                merged_threat(threat, roster, game_mode, match_id)
                for _, threat in index.threats_for(diagram_index, component)
            ]
            # a missing or non-list threats value starts a new list
            existing = cell.data.threats if isinstance(cell.data.threats, list) else []
            threats = list(existing) + additions
            cell.data = cell.data.model_copy(update={
                'threats': threats,
                'hasOpenThreats': bool(cell.data.hasOpenThreats)
                or any(isinstance(t, Threat) and t.status == STATUS_OPEN for t in threats),
            })
            logger.debug(
                "Merged %d threat(s) into %s/%s", len(additions), diagram_index, component,
            )

    return merged


def with_categories(threats: list[Threat], game_mode: Optional[str]) -> list[Threat]:
    """Copies of ``threats`` carrying the report ``category`` where a type is set."""
    enriched = []
    for threat in threats:
        if threat.type:
            category = suit_display_name(game_mode, threat.type) if is_suit(threat.type) else threat.type
            enriched.append(threat.model_copy(update={'category': category}))
        else:
            enriched.append(threat)
    return enriched
