"""
Shared pytest fixtures for threat_export tests.

- Threat Dragon V2 documents covering every cell variant
- Gameplay identified-threats structures and rosters
- An in-memory match store and a fixed clock
"""

import copy
from datetime import datetime, timezone

import pytest

from threat_export.constants import GameMode, ModelType
from threat_export.exceptions import MatchNotFoundError
from threat_export.schemas import Match


FIXED_NOW = datetime(2024, 1, 15, 10, 30, 45, 123000, tzinfo=timezone.utc)


def actor_cell(**overrides):
    cell = {
        'id': 'actor-1',
        'shape': 'actor',
        'zIndex': 1,
        'visible': True,
        'position': {'x': 50, 'y': 50},
        'size': {'width': 160, 'height': 80},
        'attrs': {
            'text': {'text': 'Customer'},
            'body': {'stroke': '#333333', 'strokeWidth': 1.5, 'strokeDasharray': None},
        },
        'data': {
            'type': 'tm.Actor',
            'name': 'Customer',
            'description': '',
            'outOfScope': False,
            'reasonOutOfScope': '',
            'hasOpenThreats': False,
            'providesAuthentication': False,
            'threats': [],
        },
    }
    cell.update(overrides)
    return cell


def process_cell(**overrides):
    cell = {
        'id': 'process-1',
        'shape': 'process',
        'zIndex': 2,
        'position': {'x': 300, 'y': 50},
        'size': {'width': 100, 'height': 100},
        'attrs': {},
        'data': {
            'type': 'tm.Process',
            'name': 'Web API',
            'description': 'Public API',
            'hasOpenThreats': False,
            'isWebApplication': True,
            'threats': [
                {
                    'id': 't-existing',
                    'number': 1,
                    'title': 'Existing threat',
                    'status': 'Mitigated',
                    'severity': 'High',
                    'type': 'Tampering',
                    'description': 'Stored before the game',
                    'mitigation': 'Requests are signed',
                    'modelType': 'STRIDE',
                    'score': '',
                },
            ],
        },
    }
    cell.update(overrides)
    return cell


def flow_cell(**overrides):
    cell = {
        'id': 'flow-1',
        'shape': 'flow',
        'zIndex': 3,
        'source': {'cell': 'actor-1', 'port': 'port-a'},
        'target': {'cell': 'process-1'},
        'vertices': [{'x': 200, 'y': 90}],
        'connector': 'smooth',
        'labels': [{'attrs': {'labelText': {'text': 'HTTPS'}}, 'position': {'distance': 0.3}}],
        'data': {
            'type': 'tm.Flow',
            'name': 'Orders',
            'hasOpenThreats': False,
            'isEncrypted': True,
            'protocol': 'HTTPS',
            'threats': [],
        },
    }
    cell.update(overrides)
    return cell


def boundary_cell(**overrides):
    cell = {
        'id': 'boundary-1',
        'shape': 'trust-boundary-curve',
        'zIndex': 4,
        'source': {'x': 10, 'y': 10},
        'target': {'x': 10, 'y': 400},
        'data': {'type': 'tm.Boundary', 'name': '', 'isTrustBoundary': True, 'hasOpenThreats': False},
    }
    cell.update(overrides)
    return cell


def text_cell(**overrides):
    cell = {
        'id': 'text-1',
        'shape': 'td-text-block',
        'zIndex': 5,
        'position': {'x': 500, 'y': 300},
        'size': {'width': 120, 'height': 40},
        'data': {'type': 'tm.Text', 'name': 'Note', 'hasOpenThreats': False},
    }
    cell.update(overrides)
    return cell


def make_document(cells=None, title='Online Shop'):
    return {
        'version': '2.5.0',
        'summary': {'title': title, 'owner': 'Security Team', 'vendorField': {'keep': True}},
        'detail': {
            'contributors': [{'name': 'Alice'}],
            'diagrams': [
                {
                    'id': 0,
                    'title': 'Main',
                    'diagramType': 'STRIDE',
                    'thumbnail': './public/content/images/thumbnail.stride.jpg',
                    'version': '2.5.0',
                    'cells': cells if cells is not None else [
                        actor_cell(), process_cell(), flow_cell(), boundary_cell(), text_cell(),
                    ],
                },
            ],
            'diagramTop': 1,
            'threatTop': 1,
            'reviewer': '',
        },
    }


@pytest.fixture
def document_dict():
    return make_document()


@pytest.fixture
def identified_threats():
    return [
        {
            'process-1': {
                'threat1': {
                    'id': 'threat1',
                    'title': 'Identified Threat 1',
                    'description': 'Line one\nLine two',
                    'mitigation': 'Validate input',
                    'severity': 'High',
                    'type': 'B',
                    'owner': '1',
                    'modal': False,
                    'new': False,
                },
                'threat2': {
                    'id': 'threat2',
                    'title': 'Identified Threat 2',
                    'type': 'A',
                    'owner': '0',
                },
            },
            'missing-cell': {
                'threat3': {'id': 'threat3', 'title': 'Lost threat'},
            },
        },
    ]


@pytest.fixture
def roster():
    return ['Alice', 'Bob']


@pytest.fixture
def match_dict(document_dict, identified_threats):
    return {
        'state': {
            'G': {
                'gameMode': GameMode.EOP.value,
                'modelType': ModelType.THREAT_DRAGON.value,
                'identifiedThreats': identified_threats,
                'round': 3,
            },
        },
        'metadata': {'players': [{'id': 0, 'name': 'Alice'}, {'id': 1, 'name': 'Bob'}]},
        'model': document_dict,
    }


@pytest.fixture
def image_match_dict(identified_threats):
    return {
        'state': {
            'G': {
                'gameMode': GameMode.EOP.value,
                'modelType': ModelType.IMAGE.value,
                'identifiedThreats': identified_threats,
            },
        },
        'metadata': {'players': {'0': {'id': 0, 'name': 'Alice'}, '1': {'id': 1, 'name': 'Bob'}}},
        'model': {'extension': 'png'},
    }


class InMemoryMatchStore:
    """Match store keeping raw match dicts, recording every fetch."""

    def __init__(self, matches=None):
        self.matches = matches or {}
        self.fetches = []

    def fetch(self, match_id, projection):
        self.fetches.append((match_id, dict(projection)))
        if match_id not in self.matches:
            raise MatchNotFoundError(match_id)
        raw = copy.deepcopy(self.matches[match_id])
        return Match.model_validate({part: raw.get(part) for part, wanted in projection.items() if wanted})

    def set_model(self, match_id, value):
        self.matches[match_id]['model'] = value


@pytest.fixture
def store(match_dict, image_match_dict):
    return InMemoryMatchStore({'match-1': match_dict, 'image-1': image_match_dict})


@pytest.fixture
def events():
    return []


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
