"""Export request handling: load a match, merge or flatten its threats, serialize."""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, TypedDict, Union

import yaml

from .aggregator import ThreatIndex, flatten, merge_into_document, with_categories
from .constants import JSON_MODEL_TYPES
from .events import ExportEvent, Observer, emit, log_observer
from .exceptions import (
    BadRequestError,
    DocumentParseError,
    MatchNotFoundError,
    NotFoundError,
    ThreatSchemaError,
    UnsupportedModelError,
)
from .model_adapter import to_render_graph
from .parser import is_image_placeholder, load_document, load_match_file, roster_from_metadata
from .report_generator import (
    ReportGenerator,
    json_filename,
    locale_timestamp,
    markdown_filename,
    to_json_document,
)
from .schemas import Document, GameState, Match, RenderGraph

logger = logging.getLogger(__name__)


class Projection(TypedDict, total=False):
    state: bool
    metadata: bool
    model: bool


class MatchStore(Protocol):
    """Storage collaborator holding match state, lobby metadata and the model."""

    def fetch(self, match_id: str, projection: Projection) -> Match:
        ...

    def set_model(self, match_id: str, value: Any) -> None:
        ...


class FileMatchStore:
    """Matches stored one per file as ``<match_id>.yaml`` (or ``.yml``/``.json``)."""

    SUFFIXES = ('.yaml', '.yml', '.json')
    MATCH_ID = re.compile(r'^[A-Za-z0-9_-]+$')

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, match_id: str) -> Path:
        if self.MATCH_ID.match(match_id):
            for suffix in self.SUFFIXES:
                path = self.directory / f'{match_id}{suffix}'
                if path.is_file():
                    return path
        raise MatchNotFoundError(match_id)

    def fetch(self, match_id: str, projection: Projection) -> Match:
        match = load_match_file(self._path(match_id))
        return Match(**{part: getattr(match, part) for part, wanted in projection.items() if wanted})

    def set_model(self, match_id: str, value: Any) -> None:
        path = self._path(match_id)
        with open(path, 'r', encoding='utf-8') as f:
            content = yaml.safe_load(f) or {}
        content['model'] = value
        with open(path, 'w', encoding='utf-8') as f:
            if path.suffix == '.json':
                json.dump(content, f, ensure_ascii=False)
            else:
                yaml.safe_dump(content, f, sort_keys=False, allow_unicode=True)


@dataclass(frozen=True)
class ExportArtifact:
    """A file handed back to the client as an attachment."""
    filename: str
    content: bytes
    media_type: str

    @property
    def headers(self) -> dict[str, str]:
        return {
            'Content-Type': self.media_type,
            'Content-Disposition': f'attachment; filename="{self.filename}"',
            'Access-Control-Expose-Headers': 'Content-Disposition',
        }


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ExportService:
    """Request handlers for the threat model and Markdown report downloads."""

    def __init__(
        self,
        store: MatchStore,
        observer: Optional[Observer] = log_observer,
        clock: Optional[Callable[[], datetime]] = None,
        report_generator: Optional[ReportGenerator] = None,
    ):
        self.store = store
        self.observer = observer
        self.clock = clock or _local_now
        self.report_generator = report_generator or ReportGenerator()

    @staticmethod
    def _require_match_id(match_id: Optional[str]) -> str:
        if not match_id:
            raise BadRequestError('Missing required parameter matchID')
        return match_id

    def _fetch(self, match_id: str, **projection: bool) -> Match:
        try:
            return self.store.fetch(match_id, Projection(**projection))
        except MatchNotFoundError as e:
            raise NotFoundError(str(e))
        except (DocumentParseError, ThreatSchemaError) as e:
            raise BadRequestError(str(e))

    @staticmethod
    def _game(match: Match) -> GameState:
        return match.state.G if match.state is not None else GameState()

    @staticmethod
    def _structured_document(match: Match, game: GameState) -> Optional[Document]:
        """The match's document, or ``None`` for image-backed or model-less matches."""
        if game.modelType not in JSON_MODEL_TYPES:
            return None
        if match.model is None or is_image_placeholder(match.model):
            return None
        try:
            return load_document(match.model)
        except DocumentParseError as e:
            raise BadRequestError(str(e))

    @staticmethod
    def _index(game: GameState) -> ThreatIndex:
        try:
            return ThreatIndex.from_game_state(game)
        except ThreatSchemaError as e:
            raise BadRequestError(str(e))

    def download_threat_model(self, match_id: Optional[str]) -> ExportArtifact:
        """The match's document with the threats found during play merged in."""
        match_id = self._require_match_id(match_id)
        match = self._fetch(match_id, state=True, metadata=True, model=True)
        game = self._game(match)

        document = self._structured_document(match, game)
        if document is None:
            raise UnsupportedModelError(
                'Cannot download model if none is set, maybe the wrong model type has been set?',
                game.modelType,
            )

        merged = merge_into_document(
            document,
            self._index(game),
            roster_from_metadata(match.metadata),
            game_mode=game.gameMode,
            match_id=match_id,
            observer=self.observer,
        )

        filename = json_filename(merged.summary.title, self.clock())
        emit(self.observer, ExportEvent(
            name='model.downloaded', match_id=match_id,
            message=f'Download model: {match_id}', detail={'filename': filename},
        ))
        return ExportArtifact(filename, to_json_document(merged), 'application/json; charset=utf-8')

    def download_threats_markdown(self, match_id: Optional[str]) -> ExportArtifact:
        """Markdown report of the gameplay threats followed by the document's own."""
        match_id = self._require_match_id(match_id)
        match = self._fetch(match_id, state=True, metadata=True, model=True)
        game = self._game(match)
        document = self._structured_document(match, game)

        threats = flatten(self._index(game), roster_from_metadata(match.metadata), document)
        now = self.clock()
        filename = markdown_filename(
            document.summary.title if document is not None else None, game.gameMode, now,
        )
        body = self.report_generator.to_markdown(
            with_categories(threats, game.gameMode), locale_timestamp(now),
        )

        emit(self.observer, ExportEvent(
            name='threats.downloaded', match_id=match_id,
            message=f'Download threats: {match_id}',
            detail={'filename': filename, 'threats': len(threats)},
        ))
        return ExportArtifact(filename, body.encode('utf-8'), 'text/markdown; charset=utf-8')

    def get_model(self, match_id: Optional[str]) -> Any:
        """The stored model exactly as kept by the store."""
        match_id = self._require_match_id(match_id)
        return self._fetch(match_id, model=True).model

    def render_graph(self, match_id: Optional[str], diagram_index: int) -> RenderGraph:
        """Render graph of one diagram; an out-of-range index gives an empty graph."""
        match_id = self._require_match_id(match_id)
        model = self._fetch(match_id, model=True).model
        if model is None or is_image_placeholder(model):
            raise UnsupportedModelError('The match has no threat model to render')
        try:
            document = load_document(model)
        except DocumentParseError as e:
            raise BadRequestError(str(e))

        diagrams = document.detail.diagrams
        diagram = diagrams[diagram_index] if 0 <= diagram_index < len(diagrams) else None
        return to_render_graph(diagram)
