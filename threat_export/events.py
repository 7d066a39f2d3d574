"""Domain events emitted by the export pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportEvent:
    """Something worth recording happened to a match during export."""
    name: str
    match_id: Optional[str] = None
    message: str = ""
    detail: dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Observer = Callable[[ExportEvent], None]


def log_observer(event: ExportEvent) -> None:
    """Default sink: one log line per event, prefixed with its ISO time."""
    logger.info("%s - %s", event.at.isoformat(), event.message or event.name)


def emit(observer: Optional[Observer], event: ExportEvent) -> None:
    if observer is not None:
        observer(event)
