from __future__ import annotations

import logging
import os

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_ROOT_LOGGER = "portfolio_import"
_CONFIGURED = False


def _env_level() -> str:
    return (
        os.getenv("PORTFOLIO_IMPORT_LOG_LEVEL")
        or os.getenv("LOG_LEVEL")
        or "INFO"
    )


def _normalize_level(level: str | int) -> str | int:
    if isinstance(level, str):
        return level.strip().upper()
    return level


def configure_logging(level: str | int | None = None) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        if level is not None:
            logging.getLogger(_ROOT_LOGGER).setLevel(_normalize_level(level))
        return

    resolved = _normalize_level(level if level is not None else _env_level())
    logging.basicConfig(format=_DEFAULT_FORMAT)
    logging.getLogger(_ROOT_LOGGER).setLevel(resolved)
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
