"""Path helpers for the local portfolio database."""

from __future__ import annotations

import os
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[3]
DEFAULT_DATA_DIR = ROOT_DIR / "data"


def data_dir() -> Path:
    override = os.getenv("PORTFOLIO_IMPORT_DATA_DIR")
    return Path(override).expanduser() if override else DEFAULT_DATA_DIR


def ensure_data_dir() -> Path:
    directory = data_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def default_db_path() -> Path:
    return data_dir() / "portfolio.sqlite"
