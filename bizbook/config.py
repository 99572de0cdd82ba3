from __future__ import annotations
import logging
import os
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = ROOT_DIR / "data"

SETTINGS_FILENAME = "settings.json"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def data_dir() -> Path:
    """Répertoire des données: BIZBOOK_DATA_DIR sinon <projet>/data."""
    env = os.environ.get("BIZBOOK_DATA_DIR")
    return Path(env).expanduser() if env else DEFAULT_DATA_DIR


def configure_logging(level: str | None = None) -> None:
    level_name = (level or os.environ.get("BIZBOOK_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
