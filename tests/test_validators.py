from __future__ import annotations

from math import isclose

import pytest

from portfolio_import.ingest.validators import (
    escape_csv_value,
    normalise_asset_type,
    normalise_boolean,
    normalise_exchange,
    normalise_trade_type,
    parse_money,
    parse_number,
)
from portfolio_import.models import AssetType, Exchange


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("false", False),
        ("FALSE", False),
        (" no ", False),
        ("0", False),
        ("true", True),
        ("Yes", True),
        ("1", True),
        ("", True),
        (None, True),
        ("maybe", True),
    ],
)
def test_normalise_boolean(raw, expected):
    assert normalise_boolean(raw) is expected


def test_parse_number_strips_noise_and_reads_leading_value():
    assert parse_number("1,234.5") == 1234.5
    assert parse_number("£12.30") == 12.3
    assert parse_number("-3") == -3.0
    assert parse_number("12abc") == 12.0
    assert parse_number("1.2.3") == 1.2
    assert parse_number("") == 0.0
    assert parse_number(None) == 0.0
    assert parse_number("n/a") == 0.0


def test_parse_money_converts_pence_to_pounds():
    assert isclose(parse_money("1500p"), 15.0, rel_tol=0.0, abs_tol=1e-9)
    assert isclose(parse_money("250 pence"), 2.5, rel_tol=0.0, abs_tol=1e-9)
    assert isclose(parse_money("99P"), 0.99, rel_tol=0.0, abs_tol=1e-9)


def test_parse_money_strips_currency_symbols_and_grouping():
    assert parse_money("£1,234.56") == 1234.56
    assert parse_money("$10") == 10.0
    assert parse_money("€ 7.5") == 7.5
    assert parse_money("") == 0.0
    assert parse_money("   ") == 0.0
    assert parse_money("abc") == 0.0


def test_normalise_asset_type_is_case_insensitive_with_other_fallback():
    assert normalise_asset_type("ETF") is AssetType.ETF
    assert normalise_asset_type("stock") is AssetType.STOCK
    assert normalise_asset_type(" Crypto ") is AssetType.CRYPTO
    assert normalise_asset_type("Warrant") is AssetType.OTHER
    assert normalise_asset_type("") is AssetType.OTHER
    assert normalise_asset_type(None) is AssetType.OTHER


def test_normalise_exchange_returns_none_for_unknown_codes():
    assert normalise_exchange("lse") is Exchange.LSE
    assert normalise_exchange("NASDAQ") is Exchange.NASDAQ
    assert normalise_exchange("TSX") is None
    assert normalise_exchange(None) is None


def test_normalise_trade_type_defaults_to_buy():
    assert normalise_trade_type("sell") == "sell"
    assert normalise_trade_type(" SELL ") == "sell"
    assert normalise_trade_type("buy") == "buy"
    assert normalise_trade_type("transfer") == "buy"
    assert normalise_trade_type(None) == "buy"


def test_escape_csv_value_quotes_only_when_needed():
    assert escape_csv_value("plain") == "plain"
    assert escape_csv_value("a,b") == '"a,b"'
    assert escape_csv_value('say "hi"') == '"say ""hi"""'
    assert escape_csv_value("line\nbreak") == '"line\nbreak"'
    assert escape_csv_value(None) == ""


def test_escape_csv_value_renders_numbers_booleans_and_enums():
    assert escape_csv_value(10.0) == "10"
    assert escape_csv_value(0.5) == "0.5"
    assert escape_csv_value(3) == "3"
    assert escape_csv_value(True) == "true"
    assert escape_csv_value(False) == "false"
    assert escape_csv_value(AssetType.ETF) == "ETF"


def test_escape_csv_value_never_uses_exponent_notation():
    assert escape_csv_value(0.00005) == "0.00005"
    assert escape_csv_value(1.5e-07) == "0.00000015"
    assert escape_csv_value(-0.00002) == "-0.00002"
    assert parse_number(escape_csv_value(0.00005)) == 0.00005
