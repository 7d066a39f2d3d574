"""Loaders for threat model documents, gameplay state and stored matches."""

import json
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import TypeAdapter, ValidationError

from .exceptions import DocumentParseError, ThreatSchemaError
from .schemas import Document, IdentifiedThreats, Match, MatchMetadata

_IDENTIFIED_THREATS = TypeAdapter(IdentifiedThreats)


def is_image_placeholder(model: Any) -> bool:
    """Image-backed matches store ``{"extension": ...}`` instead of a document."""
    return isinstance(model, dict) and 'extension' in model


def load_document(source: Union[dict, Document, str, Path]) -> Document:
    """Load and validate a threat model document from a mapping or a JSON file."""
    if isinstance(source, Document):
        return source
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise DocumentParseError(f"Threat model file does not exist: {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                source = json.load(f)
        except json.JSONDecodeError as e:
            raise DocumentParseError(f"JSON parse error in {path.name}: {e}")
    if not isinstance(source, dict):
        raise DocumentParseError("Threat model must be a JSON object")
    if is_image_placeholder(source):
        raise DocumentParseError("Stored model is an image reference, not a threat model")
    try:
        return Document.model_validate(source)
    except ValidationError as e:
        raise DocumentParseError(f"Threat model validation error: {e}")


def load_identified_threats(raw: Any) -> IdentifiedThreats:
    """Validate the sparse diagram -> component -> threat structure from gameplay."""
    if raw is None:
        return []
    try:
        return _IDENTIFIED_THREATS.validate_python(raw)
    except ValidationError as e:
        raise ThreatSchemaError(f"Identified threats validation error: {e}")


def roster_from_metadata(metadata: Optional[MatchMetadata]) -> list[Optional[str]]:
    """
    Player names indexed by player id.

    The lobby reports players either as a list or as a mapping keyed by the
    player index; both become a list where position ``i`` is player ``i``.
    """
    if metadata is None:
        return []
    players = metadata.players
    if isinstance(players, list):
        return [p.name if p is not None else None for p in players]

    indexed = {}
    for key, player in players.items():
        try:
            indexed[int(key)] = player.name
        except ValueError:
            continue
    if not indexed:
        return []
    return [indexed.get(i) for i in range(max(indexed) + 1)]


def load_match_file(path: Union[str, Path]) -> Match:
    """Read a stored match (``state``, ``metadata``, ``model``) from YAML or JSON."""
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DocumentParseError(f"YAML parse error in {path.name}: {e}")
    if not content:
        return Match()
    if not isinstance(content, dict):
        raise DocumentParseError(f"{path.name} must contain a mapping")
    try:
        return Match.model_validate(content)
    except ValidationError as e:
        raise ThreatSchemaError(f"Match validation error in {path.name}: {e}")
