"""SQLAlchemy-backed portfolio store used to apply accepted import diffs."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from portfolio_import.db.models import HoldingRecord, TradeRecord
from portfolio_import.ingest.validators import normalise_trade_type
from portfolio_import.models import Exchange, Holding, HoldingRow, Trade, TradeRow
from portfolio_import.utils.logging import get_logger

logger = get_logger(__name__)

PATCHABLE_FIELDS = {"qty", "price", "include", "target_pct", "name", "account"}


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _to_holding(record: HoldingRecord) -> Holding:
    return Holding(
        id=record.id,
        section=record.section,
        theme=record.theme,
        asset_type=record.asset_type,
        name=record.name,
        ticker=record.ticker,
        account=record.account,
        price=float(record.price),
        qty=float(record.qty),
        include=bool(record.include),
        target_pct=float(record.target_pct) if record.target_pct is not None else None,
        exchange=record.exchange,
    )


def _to_trade(record: TradeRecord) -> Trade:
    return Trade(
        id=record.id,
        holding_id=record.holding_id,
        type=normalise_trade_type(record.trade_type),
        date=record.trade_date,
        price=float(record.price),
        qty=float(record.qty),
    )


class SqlHoldingStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _get(self, holding_id: str) -> HoldingRecord:
        record = self.session.get(HoldingRecord, holding_id)
        if record is None:
            raise KeyError(f"Holding '{holding_id}' not found.")
        return record

    def list_holdings(self) -> list[Holding]:
        stmt = select(HoldingRecord).order_by(
            HoldingRecord.section, HoldingRecord.theme, HoldingRecord.name, HoldingRecord.id
        )
        return [_to_holding(record) for record in self.session.scalars(stmt)]

    def get_holding(self, holding_id: str) -> Holding:
        return _to_holding(self._get(holding_id))

    def import_holdings(self, rows: Iterable[HoldingRow]) -> list[Holding]:
        records = [
            HoldingRecord(
                section=row.section,
                theme=row.theme,
                asset_type=row.asset_type,
                name=row.name,
                ticker=row.ticker,
                exchange=row.exchange or Exchange.OTHER,
                account=row.account,
                price=row.price,
                qty=row.qty,
                include=row.include,
                target_pct=row.target_pct,
            )
            for row in rows
        ]
        self.session.add_all(records)
        self.session.flush()
        logger.info("Imported %d holdings", len(records))
        return [_to_holding(record) for record in records]

    def update_holding(self, holding_id: str, patch: dict[str, Any]) -> Holding:
        unknown = sorted(set(patch) - PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot patch holding fields: {', '.join(unknown)}")

        record = self._get(holding_id)
        for field_name, value in patch.items():
            setattr(record, field_name, value)
        self.session.flush()
        logger.info("Updated holding %s (%s)", holding_id, ", ".join(sorted(patch)))
        return _to_holding(record)

    def delete_holding(self, holding_id: str) -> None:
        record = self._get(holding_id)
        for trade in self.session.scalars(
            select(TradeRecord).where(TradeRecord.holding_id == holding_id)
        ):
            self.session.delete(trade)
        self.session.delete(record)
        self.session.flush()
        logger.info("Deleted holding %s", holding_id)

    def add_trade(
        self,
        holding_id: str,
        *,
        trade_type: str,
        trade_date: str,
        price: float,
        qty: float,
    ) -> Trade:
        self._get(holding_id)
        record = TradeRecord(
            holding_id=holding_id,
            trade_type=normalise_trade_type(trade_type),
            trade_date=trade_date,
            price=price,
            qty=qty,
        )
        self.session.add(record)
        self.session.flush()
        return _to_trade(record)

    def import_trades(self, rows: Iterable[TradeRow]) -> tuple[list[Trade], list[str]]:
        """Attach parsed trade rows to stored holdings by ticker.

        Returns the stored trades and the tickers that matched no holding.
        """
        holding_ids: dict[str, str] = {}
        for holding in self.list_holdings():
            key = holding.ticker.strip().upper()
            if key:
                holding_ids.setdefault(key, holding.id)

        trades: list[Trade] = []
        skipped: list[str] = []
        for row in rows:
            holding_id = holding_ids.get(row.ticker.strip().upper())
            if holding_id is None:
                skipped.append(row.ticker)
                continue
            trades.append(
                self.add_trade(
                    holding_id,
                    trade_type=row.type,
                    trade_date=row.date,
                    price=row.price,
                    qty=row.qty,
                )
            )

        if skipped:
            logger.warning("Skipped %d trades with no matching holding", len(skipped))
        logger.info("Imported %d trades", len(trades))
        return trades, skipped

    def list_trades(self) -> list[Trade]:
        stmt = select(TradeRecord).order_by(
            TradeRecord.trade_date, TradeRecord.created_at, TradeRecord.id
        )
        return [_to_trade(record) for record in self.session.scalars(stmt)]
