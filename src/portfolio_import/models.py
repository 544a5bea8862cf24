"""Value records shared by the import parsers, the diff engine and the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class AssetType(str, Enum):
    ETF = "ETF"
    STOCK = "Stock"
    CRYPTO = "Crypto"
    CASH = "Cash"
    BOND = "Bond"
    FUND = "Fund"
    OTHER = "Other"


class Exchange(str, Enum):
    LSE = "LSE"
    NYSE = "NYSE"
    NASDAQ = "NASDAQ"
    AMS = "AMS"
    XETRA = "XETRA"
    XC = "XC"
    VI = "VI"
    OTHER = "Other"


TradeType = Literal["buy", "sell"]
DiffType = Literal["new", "changed", "removed", "unchanged"]

IMPORTED_LABEL = "Imported"


@dataclass(frozen=True)
class HoldingRow:
    section: str
    theme: str
    asset_type: AssetType
    name: str
    ticker: str
    account: str
    price: float
    qty: float
    include: bool = True
    target_pct: float | None = None
    exchange: Exchange | None = None


@dataclass(frozen=True)
class Holding:
    id: str
    section: str
    theme: str
    asset_type: AssetType
    name: str
    ticker: str
    account: str
    price: float
    qty: float
    include: bool = True
    target_pct: float | None = None
    exchange: Exchange = Exchange.OTHER


@dataclass(frozen=True)
class TradeRow:
    ticker: str
    name: str
    type: TradeType
    date: str
    price: float
    qty: float


@dataclass(frozen=True)
class Trade:
    id: str
    holding_id: str
    type: TradeType
    date: str
    price: float
    qty: float


@dataclass(frozen=True)
class ExtractedHolding:
    """A holding as reported by the document-understanding service."""

    ticker: str
    name: str
    qty: float
    price: float
    asset_type: str
    account: str
    exchange: str | None = None


@dataclass(frozen=True)
class DocumentParseResult:
    holdings: list[ExtractedHolding]
    statement_date: str | None = None
    provider: str | None = None


@dataclass(frozen=True)
class FieldChange:
    old: float
    new: float


@dataclass
class HoldingDiff:
    # `accepted` is toggled by the review step, so this record stays mutable.
    type: DiffType
    extracted: HoldingRow
    existing: Holding | None = None
    changes: dict[str, FieldChange] | None = None
    accepted: bool = True


@dataclass(frozen=True)
class DiffSummary:
    new_count: int = 0
    changed_count: int = 0
    removed_count: int = 0
    unchanged_count: int = 0
    estimated_value_change: float = 0.0


@dataclass(frozen=True)
class ApplyResult:
    imported: int = 0
    updated: int = 0
    removed: int = 0
    skipped: list[str] = field(default_factory=list)
