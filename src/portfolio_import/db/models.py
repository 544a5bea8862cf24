from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from portfolio_import.models import AssetType, Exchange


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class HoldingRecord(Base):
    __tablename__ = "holdings"
    __table_args__ = (
        Index("ix_holdings_ticker_account", "ticker", "account"),
        Index("ix_holdings_section_theme", "section", "theme"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    section: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    theme: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    asset_type: Mapped[AssetType] = mapped_column(
        SqlEnum(AssetType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AssetType.OTHER,
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    ticker: Mapped[str] = mapped_column(String(32), nullable=False, default="", index=True)
    exchange: Mapped[Exchange] = mapped_column(
        SqlEnum(Exchange, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Exchange.OTHER,
    )
    account: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    qty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    include: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    target_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )


class TradeRecord(Base):
    __tablename__ = "trades"
    __table_args__ = (Index("ix_trades_holding_date", "holding_id", "date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    holding_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("holdings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trade_type: Mapped[str] = mapped_column("type", String(8), nullable=False)
    trade_date: Mapped[str] = mapped_column("date", String(10), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    qty: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
