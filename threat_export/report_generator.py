"""Markdown threat report and JSON document export."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .constants import MITIGATION_PLACEHOLDER, NO_TITLE
from .schemas import Document, Threat

_MARKDOWN_SPECIAL = re.compile(r'[!\[\]()]')
_LINE_BREAKS = re.compile(r'[\r\n]+')


def escape_markdown_text(text: str) -> str:
    """
    Escape text for the Markdown report.

    ``*`` and ``_`` are left alone so authors can use emphasis in their
    descriptions.
    """
    return (
        _MARKDOWN_SPECIAL.sub(r'\\\g<0>', text)
        .replace('<', '&lt;')
        .replace('>', '&gt;')
    )


def collapse_newlines(text: str) -> str:
    return _LINE_BREAKS.sub(' ', text)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """``2024-01-15T10:30:45.123Z``"""
    moment = _utc(moment)
    return f'{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond // 1000:03d}Z'


def locale_timestamp(moment: datetime) -> str:
    """Report date, e.g. ``1/15/2024, 10:30:45 AM``."""
    hour = moment.hour % 12 or 12
    meridiem = 'AM' if moment.hour < 12 else 'PM'
    return f'{moment.month}/{moment.day}/{moment.year}, {hour}:{moment:%M:%S} {meridiem}'


def _shown(value: Any) -> Optional[str]:
    """Text of a stored value as the report shows it; ``None`` stays absent."""
    return None if value is None else str(value)


def json_filename(title: Any, moment: datetime) -> str:
    """``<title>-<timestamp>.json``; a missing title leaves an empty title part."""
    timestamp = iso_timestamp(moment).replace(':', '-', 1)
    return f"{(_shown(title) or '').replace(' ', '-')}-{timestamp}.json"


def markdown_filename(title: Any, game_mode: Optional[str], moment: datetime) -> str:
    """
    ``threats-<slug>-<timestamp>.md``; the slug is the document title when the
    match has a document, else the game mode, else empty.
    """
    if title is not None:
        slug = str(title).strip().replace(' ', '')
    elif game_mode:
        slug = re.sub(r'\s+', '', game_mode)
    else:
        slug = ''
    timestamp = iso_timestamp(moment).replace(':', '-')
    return f'threats-{slug}-{timestamp}.md'


def to_json_document(document: Document) -> bytes:
    return json.dumps(
        document.to_json_dict(), ensure_ascii=False, separators=(',', ':'),
    ).encode('utf-8')


class ReportGenerator:
    """Renders the Markdown threat report."""

    TEMPLATE = 'threats.md.j2'

    def __init__(self, template_dir: Optional[Path] = None):
        if template_dir is None:
            template_dir = Path(__file__).parent / 'templates'
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters['md_escape'] = escape_markdown_text
        self.env.filters['collapse_newlines'] = collapse_newlines

    def _entry(self, threat: Threat) -> dict:
        title = (_shown(threat.title) or '').strip()
        mitigation = _shown(threat.mitigation)
        if mitigation == MITIGATION_PLACEHOLDER:
            mitigation = None
        return {
            'title': title or NO_TITLE,
            'category': _shown((threat.model_extra or {}).get('category')),
            'severity': _shown(threat.severity),
            'owner': _shown(threat.owner),
            'description': _shown(threat.description),
            'mitigation': mitigation,
        }

    def to_markdown(self, threats: list[Threat], generated_at: str) -> str:
        """One numbered block per threat, in the order given."""
        template = self.env.get_template(self.TEMPLATE)
        return template.render(
            generated_at=generated_at,
            entries=[self._entry(threat) for threat in threats],
        )


def to_markdown(threats: list[Threat], generated_at: str) -> str:
    """Render the Markdown threat report."""
    return ReportGenerator().to_markdown(threats, generated_at)
