from __future__ import annotations

import base64
import json
import math
import mimetypes
import os
import re
from typing import Any, TYPE_CHECKING

from portfolio_import.config.settings import get_settings
from portfolio_import.errors import DocumentParseError
from portfolio_import.models import DocumentParseResult, ExtractedHolding
from portfolio_import.utils.logging import get_logger

if TYPE_CHECKING:
    from openai import OpenAI

logger = get_logger(__name__)

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024

TEXT_CONTENT_TYPES = {"text/csv", "text/plain"}
IMAGE_CONTENT_TYPES = {"image/png", "image/jpeg", "image/webp", "image/gif"}
SUPPORTED_CONTENT_TYPES = {
    *TEXT_CONTENT_TYPES,
    *IMAGE_CONTENT_TYPES,
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
}

EXTRACTION_PROMPT = """You are a financial document parser. Extract all investment holdings from this document.

RULES:
- Extract every holding/position you can find
- For each holding, provide: ticker symbol, full name, quantity (number of shares/units), price per unit, asset type, and account type
- If the price is in GBX or pence, divide by 100 to convert to GBP
- Guess asset type from context: index funds/trackers -> "ETF", individual companies -> "Stock", crypto -> "Crypto", bonds -> "Bond", cash -> "Cash", managed funds -> "Fund", otherwise -> "Other"
- Account types: ISA, SIPP, GIA, Trading, or use what the document says
- If a ticker symbol is missing, try to infer it from the fund/company name
- Detect the statement/valuation date and the brokerage/provider name when present
- If a field is truly unknown, use reasonable defaults

Respond with ONLY valid JSON in this exact format (no markdown, no code fences):
{
  "statementDate": "YYYY-MM-DD" or null,
  "provider": "Provider Name" or null,
  "holdings": [
    {"ticker": "AAPL", "name": "Apple Inc.", "qty": 10, "price": 185.50,
     "assetType": "Stock", "account": "ISA", "exchange": "NASDAQ"}
  ]
}"""

_CODE_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_CODE_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def build_openai_client() -> Any:
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not configured.")
    try:
        from openai import OpenAI
    except ImportError as exc:
        raise RuntimeError(
            "openai package is not installed. Install `openai` to enable smart import."
        ) from exc
    return OpenAI(api_key=api_key)


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _CODE_FENCE_OPEN_RE.sub("", stripped)
        stripped = _CODE_FENCE_CLOSE_RE.sub("", stripped)
    return stripped.strip()


def _require_text(item: dict[str, Any], key: str, position: int) -> str:
    value = item.get(key)
    if not isinstance(value, str):
        raise DocumentParseError(f"Holding {position}: '{key}' must be a string")
    return value


def _require_number(item: dict[str, Any], key: str, position: int) -> float:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DocumentParseError(f"Holding {position}: '{key}' must be a number")
    if not math.isfinite(value):
        raise DocumentParseError(f"Holding {position}: '{key}' must be a finite number")
    return float(value)


def _optional_text(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DocumentParseError(f"'{key}' must be a string or null")
    return value


def parse_extraction_response(text: str) -> DocumentParseResult:
    body = _strip_code_fences(text)
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise DocumentParseError(f"Document parser returned invalid JSON: {exc.msg}") from exc

    if not isinstance(payload, dict):
        raise DocumentParseError("Document parser response must be a JSON object")
    raw_holdings = payload.get("holdings")
    if not isinstance(raw_holdings, list):
        raise DocumentParseError("'holdings' must be a list")

    holdings: list[ExtractedHolding] = []
    for position, item in enumerate(raw_holdings, start=1):
        if not isinstance(item, dict):
            raise DocumentParseError(f"Holding {position}: expected an object")
        exchange = item.get("exchange")
        if exchange is not None and not isinstance(exchange, str):
            raise DocumentParseError(f"Holding {position}: 'exchange' must be a string")
        holdings.append(
            ExtractedHolding(
                ticker=_require_text(item, "ticker", position),
                name=_require_text(item, "name", position),
                qty=_require_number(item, "qty", position),
                price=_require_number(item, "price", position),
                asset_type=_require_text(item, "assetType", position),
                account=_require_text(item, "account", position),
                exchange=exchange,
            )
        )

    return DocumentParseResult(
        holdings=holdings,
        statement_date=_optional_text(payload, "statementDate"),
        provider=_optional_text(payload, "provider"),
    )


def extract_response_text(response: Any) -> str:
    text = str(getattr(response, "output_text", "") or "").strip()
    if text:
        return text

    snippets: list[str] = []
    for item in getattr(response, "output", []) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", []) or []:
            if getattr(content, "type", None) not in {"output_text", "text"}:
                continue
            value = str(getattr(content, "text", "") or "").strip()
            if value:
                snippets.append(value)
    return "\n\n".join(snippets).strip()


def _resolve_content_type(filename: str, content_type: str | None) -> str:
    if content_type:
        return content_type.split(";")[0].strip().lower()
    guessed, _ = mimetypes.guess_type(filename)
    return (guessed or "").lower()


def _build_input(payload: bytes, *, filename: str, content_type: str) -> list[dict[str, Any]]:
    if content_type in TEXT_CONTENT_TYPES or filename.lower().endswith(".csv"):
        text = payload.decode("utf-8-sig", errors="replace")
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "input_text",
                        "text": f"{EXTRACTION_PROMPT}\n\nDocument content:\n{text}",
                    }
                ],
            }
        ]

    data_url = f"data:{content_type};base64,{base64.b64encode(payload).decode('ascii')}"
    if content_type in IMAGE_CONTENT_TYPES:
        attachment: dict[str, Any] = {"type": "input_image", "image_url": data_url}
    else:
        attachment = {"type": "input_file", "filename": filename, "file_data": data_url}
    return [
        {
            "role": "user",
            "content": [{"type": "input_text", "text": EXTRACTION_PROMPT}, attachment],
        }
    ]


def parse_document(
    payload: bytes,
    *,
    filename: str,
    content_type: str | None = None,
    client: OpenAI | Any | None = None,
    model: str | None = None,
    max_bytes: int | None = None,
) -> DocumentParseResult:
    if not payload:
        raise DocumentParseError("No file provided")

    settings = get_settings()
    limit = max_bytes or settings.max_document_bytes or MAX_DOCUMENT_BYTES
    if len(payload) > limit:
        raise DocumentParseError(f"File too large (max {limit // (1024 * 1024)}MB)")

    resolved_type = _resolve_content_type(filename, content_type)
    if resolved_type not in SUPPORTED_CONTENT_TYPES and not filename.lower().endswith(".csv"):
        label = resolved_type or filename.rsplit(".", 1)[-1]
        raise DocumentParseError(f"Unsupported file type: {label}")

    local_client = client or build_openai_client()
    try:
        response = local_client.responses.create(
            model=model or settings.openai_model,
            input=_build_input(payload, filename=filename, content_type=resolved_type),
        )
    except Exception as exc:
        logger.warning("Document parser request failed for %s: %s", filename, exc)
        raise DocumentParseError("Failed to parse document") from exc

    text = extract_response_text(response)
    if not text:
        raise DocumentParseError("Document parser returned an empty response")

    result = parse_extraction_response(text)
    logger.info(
        "Extracted %d holdings from %s (provider=%s, statement_date=%s)",
        len(result.holdings),
        filename,
        result.provider,
        result.statement_date,
    )
    return result


__all__ = [
    "EXTRACTION_PROMPT",
    "SUPPORTED_CONTENT_TYPES",
    "build_openai_client",
    "extract_response_text",
    "parse_document",
    "parse_extraction_response",
]
