"""Environment configuration and logging setup."""

import logging
import os
from pathlib import Path

from .constants import DEFAULT_LOG_LEVEL, DEFAULT_STORE_DIR, ENV_LOG_LEVEL, ENV_STORE_DIR

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def store_dir() -> Path:
    """Directory the file-backed match store reads from."""
    return Path(os.environ.get(ENV_STORE_DIR, DEFAULT_STORE_DIR))


def log_level() -> str:
    return os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else log_level()
    logging.basicConfig(level=level, format=LOG_FORMAT)
