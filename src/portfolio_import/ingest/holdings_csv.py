"""Holdings CSV import/export.

Three layouts are recognised, tried in this order:

* ``canonical`` - the application's own fixed-column export.
* ``interactive_investor`` - broker export keyed by Symbol/Name/Qty/Price.
* ``hargreaves_lansdown`` - multi-account export where each account name
  precedes a ``Code,Stock,Units held,Price`` table and prices are in pence.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import BinaryIO, TextIO

import pandas as pd

from portfolio_import.errors import UnsupportedFormatError
from portfolio_import.ingest.tokenizer import parse_csv_row, split_lines, strip_bom
from portfolio_import.ingest.validators import (
    escape_csv_value,
    normalise_asset_type,
    normalise_boolean,
    parse_money,
    parse_number,
)
from portfolio_import.models import IMPORTED_LABEL, AssetType, Holding, HoldingRow
from portfolio_import.utils.logging import get_logger

logger = get_logger(__name__)

HOLDINGS_HEADER = "section,theme,assetType,name,ticker,account,price,qty,include,targetPct"
HOLDINGS_COLUMNS = HOLDINGS_HEADER.split(",")
PREVIEW_COLUMNS = [*HOLDINGS_COLUMNS, "exchange"]

HoldingsParser = Callable[[str], list[HoldingRow] | None]


@dataclass(frozen=True)
class HoldingsImportPreview:
    format: str
    rows: list[HoldingRow]
    sample: pd.DataFrame
    signature: str


@dataclass(frozen=True)
class _HlTable:
    account: str
    code: int
    stock: int
    units: int
    price: int

    @property
    def width(self) -> int:
        return max(self.code, self.stock, self.units, self.price)


def _non_negative(value: float) -> float:
    return value if value > 0 else 0.0


def _cell(cells: Sequence[str], index: int) -> str:
    return cells[index] if index < len(cells) else ""


def _find_column(header: list[str], label: str, *, prefix: bool = False) -> int:
    for index, cell in enumerate(header):
        if cell == label:
            return index
    for index, cell in enumerate(header):
        if (prefix and cell.startswith(label)) or (not prefix and label in cell):
            return index
    return -1


def _imported_row(*, name: str, ticker: str, account: str, price: float, qty: float) -> HoldingRow:
    return HoldingRow(
        section=IMPORTED_LABEL,
        theme=IMPORTED_LABEL,
        asset_type=AssetType.OTHER,
        name=name,
        ticker=ticker,
        account=account or IMPORTED_LABEL,
        price=_non_negative(price),
        qty=_non_negative(qty),
        include=True,
        target_pct=None,
    )


def parse_canonical_csv(text: str) -> list[HoldingRow] | None:
    lines = split_lines(text)
    if not lines:
        return []
    if lines[0] != HOLDINGS_HEADER:
        return None

    rows: list[HoldingRow] = []
    for line in lines[1:]:
        cells = parse_csv_row(line)
        target_pct = _cell(cells, 9)
        rows.append(
            HoldingRow(
                section=_cell(cells, 0),
                theme=_cell(cells, 1),
                asset_type=normalise_asset_type(_cell(cells, 2)),
                name=_cell(cells, 3),
                ticker=_cell(cells, 4),
                account=_cell(cells, 5),
                price=_non_negative(parse_number(_cell(cells, 6))),
                qty=_non_negative(parse_number(_cell(cells, 7))),
                include=normalise_boolean(_cell(cells, 8)),
                target_pct=parse_number(target_pct) if target_pct.strip() else None,
            )
        )
    return rows


def parse_interactive_investor_csv(text: str) -> list[HoldingRow] | None:
    lines = split_lines(text)
    if not lines:
        return []

    header = [cell.lower() for cell in parse_csv_row(lines[0])]
    symbol_index = _find_column(header, "symbol")
    name_index = _find_column(header, "name")
    qty_index = _find_column(header, "qty")
    price_index = _find_column(header, "price", prefix=True)
    if -1 in (symbol_index, name_index, qty_index, price_index):
        return None

    width = max(symbol_index, name_index, qty_index, price_index)
    rows: list[HoldingRow] = []
    skipped = 0
    for line in lines[1:]:
        cells = parse_csv_row(line)
        if len(cells) <= width:
            skipped += 1
            continue

        qty = parse_number(cells[qty_index])
        price = parse_money(cells[price_index])
        if qty == 0 and price == 0:
            skipped += 1
            continue

        rows.append(
            _imported_row(
                name=cells[name_index],
                ticker=cells[symbol_index],
                account=IMPORTED_LABEL,
                price=price,
                qty=qty,
            )
        )

    if skipped:
        logger.debug("Interactive Investor import skipped %d non-holding rows", skipped)
    return rows


def _hl_table(cells: list[str], account: str | None) -> _HlTable | None:
    header = [cell.lower() for cell in cells]
    if "code" not in header or "stock" not in header:
        return None
    units_index = _find_column(header, "units")
    price_index = _find_column(header, "price")
    if units_index == -1 or price_index == -1:
        return None
    return _HlTable(
        account=account or IMPORTED_LABEL,
        code=header.index("code"),
        stock=header.index("stock"),
        units=units_index,
        price=price_index,
    )


def parse_hl_csv(text: str) -> list[HoldingRow] | None:
    holdings: list[HoldingRow] = []
    account: str | None = None
    table: _HlTable | None = None
    found_table = False

    for line in split_lines(text):
        cells = parse_csv_row(line)
        opened = _hl_table(cells, account)
        if opened is not None:
            table = opened
            found_table = True
            account = None
            continue

        if table is None:
            if account is None:
                account = cells[0] or None
            continue

        lowered = line.lower()
        if lowered.startswith('""'):
            continue
        if "totals" in lowered:
            table = None
            account = None
            continue
        if len(cells) <= table.width:
            # Subheading or the next section's account name; the table stays open.
            account = cells[0] or None
            continue

        qty = parse_number(cells[table.units])
        price = parse_money(f"{cells[table.price]}p")
        if qty == 0 and price == 0:
            continue

        holdings.append(
            _imported_row(
                name=cells[table.stock],
                ticker=cells[table.code],
                account=table.account,
                price=price,
                qty=qty,
            )
        )

    if not found_table:
        return None
    return holdings


HOLDINGS_FORMATS: list[tuple[str, HoldingsParser]] = [
    ("canonical", parse_canonical_csv),
    ("interactive_investor", parse_interactive_investor_csv),
    ("hargreaves_lansdown", parse_hl_csv),
]


def _prepare(text: str) -> str:
    return strip_bom(text.strip())


def detect_holdings_format(text: str) -> str | None:
    trimmed = _prepare(text)
    if not trimmed:
        return None
    for name, parser in HOLDINGS_FORMATS:
        if parser(trimmed) is not None:
            return name
    return None


def parse_holdings_csv(text: str) -> list[HoldingRow]:
    trimmed = _prepare(text)
    if not trimmed:
        return []

    for name, parser in HOLDINGS_FORMATS:
        rows = parser(trimmed)
        if rows is not None:
            logger.info("Parsed %d holdings using %s format", len(rows), name)
            return rows

    logger.warning("Holdings CSV header not recognised: %r", split_lines(trimmed)[0][:120])
    raise UnsupportedFormatError("Unsupported CSV format")


def holdings_to_csv(rows: Iterable[HoldingRow | Holding]) -> str:
    lines = [HOLDINGS_HEADER]
    for row in rows:
        lines.append(
            ",".join(
                escape_csv_value(value)
                for value in (
                    row.section,
                    row.theme,
                    row.asset_type,
                    row.name,
                    row.ticker,
                    row.account,
                    row.price,
                    row.qty,
                    row.include,
                    row.target_pct,
                )
            )
        )
    return "\n".join(lines)


def holdings_frame(rows: Iterable[HoldingRow | Holding]) -> pd.DataFrame:
    records = [
        {
            "section": row.section,
            "theme": row.theme,
            "assetType": row.asset_type.value,
            "name": row.name,
            "ticker": row.ticker,
            "account": row.account,
            "price": row.price,
            "qty": row.qty,
            "include": row.include,
            "targetPct": row.target_pct,
            "exchange": row.exchange.value if row.exchange is not None else None,
        }
        for row in rows
    ]
    return pd.DataFrame(records, columns=PREVIEW_COLUMNS)


def _read_text(file_obj: str | Path | bytes | BinaryIO | TextIO) -> str:
    if isinstance(file_obj, Path):
        return file_obj.read_text(encoding="utf-8-sig")
    if isinstance(file_obj, bytes):
        return file_obj.decode("utf-8-sig", errors="replace")
    if isinstance(file_obj, str):
        return file_obj
    if hasattr(file_obj, "read"):
        payload = file_obj.read()
        if isinstance(payload, bytes):
            return payload.decode("utf-8-sig", errors="replace")
        return str(payload)
    raise TypeError("Unsupported CSV input type.")


def header_signature(text: str) -> str:
    lines = split_lines(text)
    header = lines[0] if lines else ""
    canonical = "|".join(cell.lower() for cell in parse_csv_row(header))
    return sha256(canonical.encode("utf-8")).hexdigest()


def load_holdings_csv_preview(
    file_obj: str | Path | bytes | BinaryIO | TextIO,
    max_rows: int = 200,
) -> HoldingsImportPreview:
    """Parse an upload for the review step.

    Plain ``str`` input is treated as CSV text; pass a ``Path`` to read a file.
    """
    text = _read_text(file_obj)
    rows = parse_holdings_csv(text)
    return HoldingsImportPreview(
        format=detect_holdings_format(text) or "empty",
        rows=rows,
        sample=holdings_frame(rows[:max_rows]),
        signature=header_signature(text),
    )


__all__ = [
    "HOLDINGS_FORMATS",
    "HOLDINGS_HEADER",
    "HoldingsImportPreview",
    "detect_holdings_format",
    "holdings_frame",
    "holdings_to_csv",
    "load_holdings_csv_preview",
    "parse_hl_csv",
    "parse_holdings_csv",
    "parse_interactive_investor_csv",
    "parse_canonical_csv",
]
