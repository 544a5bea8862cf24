"""Statement-vs-portfolio reconciliation.

Incoming holdings (from a CSV import or a parsed document) are paired with the
portfolio's current holdings and classified as new, changed, removed or
unchanged so a user can review them before anything is written.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import pandas as pd

from portfolio_import.ingest.validators import normalise_asset_type, normalise_exchange
from portfolio_import.models import (
    IMPORTED_LABEL,
    ApplyResult,
    DiffSummary,
    DocumentParseResult,
    ExtractedHolding,
    FieldChange,
    Holding,
    HoldingDiff,
    HoldingRow,
)
from portfolio_import.utils.logging import get_logger
from portfolio_import.utils.money import position_value, round_money

logger = get_logger(__name__)

QTY_TOLERANCE = 0.0001
PRICE_TOLERANCE = 0.01

_DIFF_ORDER = {"new": 0, "changed": 1, "removed": 2, "unchanged": 3}

DIFF_TABLE_COLUMNS = [
    "type",
    "ticker",
    "name",
    "account",
    "old_qty",
    "new_qty",
    "old_price",
    "new_price",
    "accepted",
]


class HoldingStore(Protocol):
    def import_holdings(self, rows: Sequence[HoldingRow]) -> Any: ...

    def update_holding(self, holding_id: str, patch: dict[str, Any]) -> Any: ...

    def delete_holding(self, holding_id: str) -> Any: ...


def _normalize_text(value: Any) -> str:
    return str(value or "").strip()


def holding_match_key(ticker: str | None, name: str | None = "", account: str | None = "") -> str | None:
    symbol = _normalize_text(ticker).upper()
    if symbol:
        return symbol

    # Cash-like rows carry no ticker; name + account is the next best identity.
    name_text = _normalize_text(name).upper()
    account_text = _normalize_text(account).upper()
    if not name_text and not account_text:
        return None
    return f"NAME:{name_text}|ACCOUNT:{account_text}"


def _amount(value: float) -> float:
    number = float(value)
    return number if math.isfinite(number) and number > 0 else 0.0


def extracted_to_row(extracted: ExtractedHolding) -> HoldingRow:
    return HoldingRow(
        section=IMPORTED_LABEL,
        theme="All",
        asset_type=normalise_asset_type(extracted.asset_type),
        name=extracted.name,
        ticker=extracted.ticker,
        account=extracted.account or IMPORTED_LABEL,
        price=_amount(extracted.price),
        qty=_amount(extracted.qty),
        include=True,
        exchange=normalise_exchange(extracted.exchange),
    )


def _as_row(item: ExtractedHolding | HoldingRow) -> HoldingRow:
    if isinstance(item, HoldingRow):
        return item
    return extracted_to_row(item)


def _removed_row(existing: Holding) -> HoldingRow:
    return extracted_to_row(
        ExtractedHolding(
            ticker=existing.ticker,
            name=existing.name,
            qty=0.0,
            price=existing.price,
            asset_type=existing.asset_type.value,
            account=existing.account,
            exchange=existing.exchange.value if existing.exchange is not None else None,
        )
    )


def _take_match(candidates: list[Holding], account: str) -> Holding | None:
    if not candidates:
        return None
    wanted = _normalize_text(account).upper()
    for index, holding in enumerate(candidates):
        if _normalize_text(holding.account).upper() == wanted:
            return candidates.pop(index)
    return candidates.pop(0)


def _field_changes(
    existing: Holding,
    row: HoldingRow,
    *,
    qty_tolerance: float,
    price_tolerance: float,
) -> dict[str, FieldChange]:
    changes: dict[str, FieldChange] = {}
    if abs(existing.qty - row.qty) > qty_tolerance:
        changes["qty"] = FieldChange(old=existing.qty, new=row.qty)
    if abs(existing.price - row.price) > price_tolerance:
        changes["price"] = FieldChange(old=existing.price, new=row.price)
    return changes


def diff_holdings(
    current: Iterable[Holding],
    extracted: Iterable[ExtractedHolding | HoldingRow],
    *,
    qty_tolerance: float = QTY_TOLERANCE,
    price_tolerance: float = PRICE_TOLERANCE,
) -> list[HoldingDiff]:
    current_list = list(current)
    incoming = [_as_row(item) for item in extracted]

    unmatched: dict[str, list[Holding]] = defaultdict(list)
    for holding in current_list:
        key = holding_match_key(holding.ticker, holding.name, holding.account)
        if key:
            unmatched[key].append(holding)

    diffs: list[HoldingDiff] = []
    for row in incoming:
        key = holding_match_key(row.ticker, row.name, row.account)
        existing = _take_match(unmatched[key], row.account) if key else None
        if existing is None:
            diffs.append(HoldingDiff(type="new", extracted=row, accepted=True))
            continue

        changes = _field_changes(
            existing,
            row,
            qty_tolerance=qty_tolerance,
            price_tolerance=price_tolerance,
        )
        if changes:
            diffs.append(
                HoldingDiff(
                    type="changed",
                    extracted=row,
                    existing=existing,
                    changes=changes,
                    accepted=True,
                )
            )
        else:
            diffs.append(
                HoldingDiff(type="unchanged", extracted=row, existing=existing, accepted=False)
            )

    # An empty statement must not propose wiping the whole portfolio.
    if incoming:
        for holdings in unmatched.values():
            for existing in holdings:
                diffs.append(
                    HoldingDiff(
                        type="removed",
                        extracted=_removed_row(existing),
                        existing=existing,
                        accepted=True,
                    )
                )

    diffs.sort(key=lambda diff: _DIFF_ORDER[diff.type])
    logger.debug(
        "Diffed %d incoming holdings against %d current holdings",
        len(incoming),
        len(current_list),
    )
    return diffs


def diff_from_parse_result(
    current: Iterable[Holding],
    result: DocumentParseResult,
    **tolerances: float,
) -> list[HoldingDiff]:
    return diff_holdings(current, result.holdings, **tolerances)


def summarize_diff(diffs: Iterable[HoldingDiff]) -> DiffSummary:
    counts = {"new": 0, "changed": 0, "removed": 0, "unchanged": 0}
    value_change = 0.0

    for diff in diffs:
        counts[diff.type] += 1
        if diff.type == "new":
            value_change += position_value(diff.extracted.price, diff.extracted.qty)
        elif diff.type == "changed":
            qty_change = (diff.changes or {}).get("qty")
            if qty_change is not None and diff.existing is not None:
                old_value = position_value(diff.existing.price, qty_change.old)
                new_value = position_value(diff.extracted.price, qty_change.new)
                value_change += new_value - old_value
        elif diff.type == "removed" and diff.existing is not None:
            value_change -= position_value(diff.existing.price, diff.existing.qty)

    return DiffSummary(
        new_count=counts["new"],
        changed_count=counts["changed"],
        removed_count=counts["removed"],
        unchanged_count=counts["unchanged"],
        estimated_value_change=round_money(value_change),
    )


def apply_accepted_diffs(diffs: Iterable[HoldingDiff], store: HoldingStore) -> ApplyResult:
    accepted = [diff for diff in diffs if diff.accepted]
    skipped: list[str] = []

    new_rows = [diff.extracted for diff in accepted if diff.type == "new"]
    if new_rows:
        store.import_holdings(new_rows)

    updated = 0
    removed = 0
    for diff in accepted:
        if diff.type not in {"changed", "removed"}:
            continue
        if diff.existing is None:
            skipped.append(f"{diff.type} diff for '{diff.extracted.ticker}' has no existing holding")
            continue

        if diff.type == "changed":
            patch: dict[str, Any] = {}
            changes = diff.changes or {}
            if "qty" in changes:
                patch["qty"] = changes["qty"].new
            if "price" in changes:
                patch["price"] = changes["price"].new
            if not patch:
                continue
            store.update_holding(diff.existing.id, patch)
            updated += 1
        else:
            store.delete_holding(diff.existing.id)
            removed += 1

    logger.info(
        "Applied import review: %d imported, %d updated, %d removed",
        len(new_rows),
        updated,
        removed,
    )
    return ApplyResult(imported=len(new_rows), updated=updated, removed=removed, skipped=skipped)


def diff_table(diffs: Iterable[HoldingDiff]) -> pd.DataFrame:
    records: list[dict[str, Any]] = []
    for diff in diffs:
        existing = diff.existing
        row = diff.extracted
        records.append(
            {
                "type": diff.type,
                "ticker": (existing.ticker if existing else row.ticker),
                "name": (existing.name if existing else row.name),
                "account": (existing.account if existing else row.account),
                "old_qty": existing.qty if existing else None,
                "new_qty": row.qty,
                "old_price": existing.price if existing else None,
                "new_price": row.price,
                "accepted": diff.accepted,
            }
        )
    return pd.DataFrame(records, columns=DIFF_TABLE_COLUMNS)
