from __future__ import annotations

import math
import re
from decimal import Decimal
from enum import Enum
from typing import Any

from portfolio_import.models import AssetType, Exchange, TradeType

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_LEADING_FLOAT_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_PENCE_SUFFIX_RE = re.compile(r"p(?:ence)?$", re.IGNORECASE)
_CURRENCY_SYMBOL_RE = re.compile(r"[£$€]")

_TRUE_TOKENS = {"true", "yes", "1"}
_FALSE_TOKENS = {"false", "no", "0"}

_ASSET_TYPES = {member.value.lower(): member for member in AssetType}
_EXCHANGES = {member.value.lower(): member for member in Exchange}


def _leading_float(text: str) -> float | None:
    match = _LEADING_FLOAT_RE.match(text.strip())
    if not match:
        return None
    value = float(match.group(0))
    if not math.isfinite(value):
        return None
    return value


def normalise_boolean(raw: str | None) -> bool:
    if not isinstance(raw, str) or not raw.strip():
        return True

    value = raw.strip().lower()
    if value in _TRUE_TOKENS:
        return True
    if value in _FALSE_TOKENS:
        return False
    return True


def parse_number(raw: str | None) -> float:
    if not raw:
        return 0.0
    value = _leading_float(_NON_NUMERIC_RE.sub("", str(raw)))
    return value if value is not None else 0.0


def parse_money(raw: str | None) -> float:
    """Parse a price cell, converting pence quotes such as ``1500p`` to pounds."""
    if not raw:
        return 0.0

    trimmed = str(raw).strip()
    if not trimmed:
        return 0.0

    is_pence = _PENCE_SUFFIX_RE.search(trimmed) is not None
    cleaned = _PENCE_SUFFIX_RE.sub("", trimmed)
    cleaned = _CURRENCY_SYMBOL_RE.sub("", cleaned).replace(",", "").strip()

    value = _leading_float(cleaned)
    if value is None:
        return 0.0
    return value / 100 if is_pence else value


def normalise_asset_type(raw: str | None) -> AssetType:
    if not raw:
        return AssetType.OTHER
    return _ASSET_TYPES.get(str(raw).strip().lower(), AssetType.OTHER)


def normalise_exchange(raw: str | None) -> Exchange | None:
    if not raw:
        return None
    return _EXCHANGES.get(str(raw).strip().lower())


def normalise_trade_type(raw: str | None) -> TradeType:
    if str(raw or "").strip().lower() == "sell":
        return "sell"
    return "buy"


def _format_number(value: float | int) -> str:
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        text = repr(value)
        if "e" in text:
            # Exponent notation would not survive parse_number.
            text = format(Decimal(text), "f")
            if "." in text:
                text = text.rstrip("0").rstrip(".")
        return text
    return str(value)


def escape_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (int, float)):
        text = _format_number(value)
    else:
        text = str(value.value if isinstance(value, Enum) else value)

    if any(char in text for char in (",", '"', "\n")):
        return '"' + text.replace('"', '""') + '"'
    return text
