from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from portfolio_import.errors import DocumentParseError, ImportFormatError
from portfolio_import.ingest import document_import
from portfolio_import.ingest.document_import import (
    extract_response_text,
    parse_document,
    parse_extraction_response,
)

VALID_PAYLOAD = {
    "statementDate": "2025-03-31",
    "provider": "Hargreaves Lansdown",
    "holdings": [
        {
            "ticker": "VWRL",
            "name": "Vanguard FTSE All-World",
            "qty": 10,
            "price": 100.5,
            "assetType": "ETF",
            "account": "ISA",
            "exchange": "LSE",
        }
    ],
}


class FakeResponses:
    def __init__(self, output_text: str = "", error: Exception | None = None) -> None:
        self.output_text = output_text
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output_text=self.output_text, output=[])


def _client(output_text: str = "", error: Exception | None = None):
    return SimpleNamespace(responses=FakeResponses(output_text=output_text, error=error))


def test_parse_extraction_response_reads_holdings_and_metadata():
    result = parse_extraction_response(json.dumps(VALID_PAYLOAD))

    assert result.statement_date == "2025-03-31"
    assert result.provider == "Hargreaves Lansdown"
    assert len(result.holdings) == 1
    holding = result.holdings[0]
    assert holding.ticker == "VWRL"
    assert holding.qty == 10.0
    assert holding.price == 100.5
    assert holding.asset_type == "ETF"
    assert holding.exchange == "LSE"


def test_parse_extraction_response_strips_markdown_fences():
    fenced = f"```json\n{json.dumps(VALID_PAYLOAD)}\n```"

    result = parse_extraction_response(fenced)

    assert result.holdings[0].account == "ISA"


def test_parse_extraction_response_allows_missing_metadata():
    result = parse_extraction_response('{"holdings": []}')

    assert result.holdings == []
    assert result.statement_date is None
    assert result.provider is None


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("not json", "invalid JSON"),
        ("[]", "JSON object"),
        ('{"holdings": {}}', "'holdings' must be a list"),
        ('{"holdings": ["VWRL"]}', "Holding 1: expected an object"),
        (
            '{"holdings": [{"ticker": "A", "name": "A", "qty": "10", "price": 1, '
            '"assetType": "ETF", "account": "ISA"}]}',
            "Holding 1: 'qty' must be a number",
        ),
        (
            '{"holdings": [{"ticker": "A", "name": "A", "qty": true, "price": 1, '
            '"assetType": "ETF", "account": "ISA"}]}',
            "Holding 1: 'qty' must be a number",
        ),
        (
            '{"holdings": [{"ticker": 5, "name": "A", "qty": 1, "price": 1, '
            '"assetType": "ETF", "account": "ISA"}]}',
            "Holding 1: 'ticker' must be a string",
        ),
        ('{"holdings": [], "provider": 3}', "'provider' must be a string or null"),
    ],
)
def test_parse_extraction_response_rejects_malformed_payloads(body, message):
    with pytest.raises(DocumentParseError, match=message):
        parse_extraction_response(body)


def test_extract_response_text_falls_back_to_message_content():
    response = SimpleNamespace(
        output_text="",
        output=[
            SimpleNamespace(type="reasoning", content=[]),
            SimpleNamespace(
                type="message",
                content=[SimpleNamespace(type="output_text", text='{"holdings": []}')],
            ),
        ],
    )

    assert extract_response_text(response) == '{"holdings": []}'


def test_parse_document_sends_csv_inline(monkeypatch):
    monkeypatch.setenv("OPENAI_MODEL", "test-model")
    client = _client(json.dumps(VALID_PAYLOAD))

    result = parse_document(b"Code,Stock\nVWRL,Vanguard", filename="holdings.csv", client=client)

    assert result.provider == "Hargreaves Lansdown"
    call = client.responses.calls[0]
    assert call["model"] == "test-model"
    content = call["input"][0]["content"]
    assert len(content) == 1
    assert content[0]["type"] == "input_text"
    assert "VWRL,Vanguard" in content[0]["text"]


def test_parse_document_attaches_pdf_and_images():
    client = _client('{"holdings": []}')

    parse_document(b"%PDF-1.7", filename="statement.pdf", client=client, model="m")
    parse_document(b"\x89PNG", filename="shot.png", client=client, model="m")

    pdf_content = client.responses.calls[0]["input"][0]["content"]
    image_content = client.responses.calls[1]["input"][0]["content"]
    assert pdf_content[1]["type"] == "input_file"
    assert pdf_content[1]["filename"] == "statement.pdf"
    assert pdf_content[1]["file_data"].startswith("data:application/pdf;base64,")
    assert image_content[1]["type"] == "input_image"
    assert image_content[1]["image_url"].startswith("data:image/png;base64,")


def test_parse_document_rejects_empty_large_and_unsupported_files():
    client = _client('{"holdings": []}')

    with pytest.raises(DocumentParseError, match="No file provided"):
        parse_document(b"", filename="empty.pdf", client=client)
    with pytest.raises(DocumentParseError, match=r"File too large \(max 1MB\)"):
        parse_document(b"x" * (1024 * 1024 + 1), filename="big.pdf", client=client, max_bytes=1024 * 1024)
    with pytest.raises(DocumentParseError, match="Unsupported file type"):
        parse_document(b"MZ", filename="tool.exe", client=client)
    assert client.responses.calls == []


def test_parse_document_wraps_service_failures():
    client = _client(error=RuntimeError("boom"))

    with pytest.raises(DocumentParseError, match="Failed to parse document"):
        parse_document(b"%PDF", filename="statement.pdf", client=client)


def test_parse_document_rejects_empty_service_response():
    with pytest.raises(ImportFormatError, match="empty response"):
        parse_document(b"%PDF", filename="statement.pdf", client=_client(""))


def test_build_openai_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        document_import.build_openai_client()


def test_parse_document_builds_default_client(monkeypatch):
    client = _client('{"holdings": []}')
    monkeypatch.setattr(
        "portfolio_import.ingest.document_import.build_openai_client",
        lambda: client,
    )

    result = parse_document(b"%PDF", filename="statement.pdf")

    assert result.holdings == []
    assert len(client.responses.calls) == 1


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
def test_parse_extraction_response_rejects_non_finite_numbers(literal):
    body = (
        '{"holdings": [{"ticker": "VWRL", "name": "Vanguard", "qty": '
        f"{literal}"
        ', "price": 100, "assetType": "ETF", "account": "ISA"}]}'
    )

    with pytest.raises(DocumentParseError, match="Holding 1: 'qty' must be a finite number"):
        parse_extraction_response(body)
