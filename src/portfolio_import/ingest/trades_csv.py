from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from portfolio_import.errors import UnsupportedFormatError
from portfolio_import.ingest.tokenizer import parse_csv_row, split_lines, strip_bom
from portfolio_import.ingest.validators import (
    escape_csv_value,
    normalise_trade_type,
    parse_number,
)
from portfolio_import.models import Holding, Trade, TradeRow
from portfolio_import.utils.logging import get_logger

logger = get_logger(__name__)

TRADE_HEADER = "ticker,name,type,date,price,qty"


def parse_trades_csv(text: str) -> list[TradeRow]:
    trimmed = strip_bom(text.strip())
    if not trimmed:
        return []

    lines = split_lines(trimmed)
    if not lines:
        return []
    if lines[0].lower() != TRADE_HEADER:
        logger.warning("Trades CSV header not recognised: %r", lines[0][:120])
        raise UnsupportedFormatError("Unsupported trades CSV format")

    today = date.today().isoformat()
    trades: list[TradeRow] = []
    for line in lines[1:]:
        cells = parse_csv_row(line)
        padded = cells + [""] * (6 - len(cells))
        ticker, name, trade_type, trade_date, price, qty = padded[:6]
        trades.append(
            TradeRow(
                ticker=ticker,
                name=name,
                type=normalise_trade_type(trade_type),
                date=trade_date or today,
                price=parse_number(price),
                qty=parse_number(qty),
            )
        )

    logger.debug("Parsed %d trades", len(trades))
    return trades


def trades_to_csv(trades: Iterable[Trade], holdings: Iterable[Holding]) -> str:
    holdings_by_id = {holding.id: holding for holding in holdings}
    lines = [TRADE_HEADER]
    for trade in trades:
        holding = holdings_by_id.get(trade.holding_id)
        lines.append(
            ",".join(
                escape_csv_value(value)
                for value in (
                    holding.ticker if holding else "",
                    holding.name if holding else "",
                    trade.type,
                    trade.date,
                    trade.price,
                    trade.qty,
                )
            )
        )
    return "\n".join(lines)
