from __future__ import annotations

import os
from dataclasses import dataclass

from portfolio_import.config.paths import default_db_path

DEFAULT_QTY_TOLERANCE = 0.0001
DEFAULT_PRICE_TOLERANCE = 0.01
DEFAULT_MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_int(name: str, default: int) -> int:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    app_env: str
    database_url: str
    openai_model: str
    enable_smart_import: bool
    qty_tolerance: float
    price_tolerance: float
    max_document_bytes: int


def get_settings() -> Settings:
    db_default = f"sqlite:///{default_db_path().as_posix()}"
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=os.getenv("DATABASE_URL", db_default),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-5-mini"),
        enable_smart_import=_env_bool("ENABLE_SMART_IMPORT", False),
        qty_tolerance=_env_float("DIFF_QTY_TOLERANCE", DEFAULT_QTY_TOLERANCE),
        price_tolerance=_env_float("DIFF_PRICE_TOLERANCE", DEFAULT_PRICE_TOLERANCE),
        max_document_bytes=_env_int("MAX_DOCUMENT_BYTES", DEFAULT_MAX_DOCUMENT_BYTES),
    )
