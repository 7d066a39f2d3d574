"""
Constants shared by the adapter, the aggregator and the exporters.

Game modes, model kinds, suit display names and the render type tables.
"""

from enum import Enum
from typing import Optional

# ============================================================================
# ENVIRONMENT VARIABLE NAMES
# ============================================================================

ENV_STORE_DIR = "THREAT_EXPORT_STORE_DIR"
ENV_LOG_LEVEL = "THREAT_EXPORT_LOG_LEVEL"

DEFAULT_STORE_DIR = "matches"
DEFAULT_LOG_LEVEL = "INFO"


# ============================================================================
# GAME AND MODEL KINDS
# ============================================================================


class GameMode(str, Enum):
    EOP = "Elevation of Privilege"
    CORNUCOPIA = "OWASP Cornucopia"
    CUMULUS = "OWASP Cumulus"


class ModelType(str, Enum):
    THREAT_DRAGON = "Threat Dragon"
    PRIVACY_ENHANCED = "Default"
    IMAGE = "Image"


# Model kinds backed by a structured document rather than an image
JSON_MODEL_TYPES = (ModelType.THREAT_DRAGON.value, ModelType.PRIVACY_ENHANCED.value)

METHODOLOGY_NAMES = {
    GameMode.EOP.value: "STRIDE",
    GameMode.CORNUCOPIA.value: "Cornucopia",
    GameMode.CUMULUS.value: "Cumulus",
}

SUITS = ("A", "B", "C", "D", "E", "T")

SUIT_DISPLAY_NAMES = {
    GameMode.EOP.value: {
        "A": "Spoofing",
        "B": "Tampering",
        "C": "Repudiation",
        "D": "Information Disclosure",
        "E": "Denial of Service",
        "T": "Elevation of Privilege",
    },
    GameMode.CORNUCOPIA.value: {
        "A": "Data validation & encoding",
        "B": "Authentication",
        "C": "Session management",
        "D": "Authorization",
        "E": "Cryptography",
        "T": "Cornucopia",
    },
    GameMode.CUMULUS.value: {
        "A": "Delivery",
        "B": "Resources",
        "C": "Access & Secrets",
        "D": "Visibility",
        "E": "Governance",
        "T": "Cumulus",
    },
}


# ============================================================================
# THREAT DEFAULTS
# ============================================================================

STATUS_NOT_APPLICABLE = "NA"
STATUS_OPEN = "Open"
DEFAULT_GAME_SEVERITY = "Low"
MITIGATION_PLACEHOLDER = "No mitigation provided."
NO_TITLE = "No title given"


# ============================================================================
# RENDERING
# ============================================================================

SEMANTIC_PREFIX = "tm."

RENDER_TYPE_REMAP = {
    "tm.BoundaryBox": "tm.Boundary",
    "tm.Text": "tm.Process",
}

SHAPE_RENDER_TYPES = {
    "process": "tm.Process",
    "actor": "tm.Actor",
    "store": "tm.Store",
    "flow": "tm.Flow",
    "trust-boundary-curve": "tm.Boundary",
    "trust-boundary-box": "tm.Boundary",
}

FALLBACK_RENDER_TYPE = "tm.Process"
DEFAULT_LABEL_DISTANCE = 0.5


def methodology_name(game_mode: Optional[str]) -> Optional[str]:
    """Threat categorization scheme for a game mode, ``None`` when unknown."""
    return METHODOLOGY_NAMES.get(game_mode) if game_mode else None


def is_suit(value: Optional[str]) -> bool:
    return value in SUITS


def suit_display_name(game_mode: Optional[str], suit: Optional[str]) -> str:
    """Human name of a card suit; unknown codes come back unchanged."""
    if not suit:
        return ""
    return SUIT_DISPLAY_NAMES.get(game_mode or "", {}).get(suit, suit)
