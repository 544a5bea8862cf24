from __future__ import annotations

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session

from portfolio_import.db.models import Base
from portfolio_import.db.repository import SqlHoldingStore
from portfolio_import.models import AssetType, Exchange, Holding, HoldingRow


@pytest.fixture
def db_session() -> Session:
    engine = create_engine("sqlite:///:memory:", future=True)

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, _record) -> None:
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def holding_store(db_session: Session) -> SqlHoldingStore:
    return SqlHoldingStore(db_session)


@pytest.fixture
def current_holdings() -> list[Holding]:
    return [
        Holding(
            id="h-vwrl",
            section="Core",
            theme="Global",
            asset_type=AssetType.ETF,
            name="Vanguard FTSE All-World",
            ticker="VWRL",
            account="ISA",
            price=100.0,
            qty=10.0,
            exchange=Exchange.LSE,
        ),
        Holding(
            id="h-aapl",
            section="Satellite",
            theme="Tech",
            asset_type=AssetType.STOCK,
            name="Apple Inc.",
            ticker="AAPL",
            account="GIA",
            price=185.5,
            qty=4.0,
            exchange=Exchange.NASDAQ,
        ),
        Holding(
            id="h-cash",
            section="Cash",
            theme="Cash",
            asset_type=AssetType.CASH,
            name="Cash",
            ticker="",
            account="ISA",
            price=1.0,
            qty=250.0,
        ),
    ]


@pytest.fixture
def sample_row() -> HoldingRow:
    return HoldingRow(
        section="Core",
        theme="Global",
        asset_type=AssetType.ETF,
        name="Vanguard FTSE All-World",
        ticker="VWRL",
        account="ISA",
        price=100.0,
        qty=10.0,
        include=True,
        target_pct=60.0,
    )
