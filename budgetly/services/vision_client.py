# filename: budgetly/services/vision_client.py
"""
Vision API boundary: send one invoice file to a hosted vision model and return
its raw text answer.

Public API:
    OpenAIVisionClient(model=None, timeout=None).extract(
        content, mime_type, filename, api_key, allowed_categories
    ) -> str

Failures are mapped onto budgetly.errors:
- timeouts                 -> UpstreamTimeoutError     (retried by the orchestrator)
- connection errors, 5xx   -> TransientUpstreamError   (retried)
- other HTTP errors (4xx)  -> PermanentUpstreamError   (not retried)

The SDK's own retries are switched off; retry policy lives in
budgetly/services/extraction.py.
"""

from __future__ import annotations

import base64
import json
from typing import Iterable, Optional, Protocol

import openai
from openai import OpenAI

import config
from budgetly.errors import (
    MalformedExtractionError,
    PermanentUpstreamError,
    TransientUpstreamError,
    UpstreamTimeoutError,
)


class VisionClient(Protocol):
    def extract(
        self,
        content: bytes,
        mime_type: str,
        filename: str,
        api_key: str,
        allowed_categories: Iterable[str],
    ) -> str: ...


EXTRACTION_INSTRUCTIONS = (
    "You read credit card invoices and statements.\n"
    "Extract every transaction line (purchases, installments, fees, interest, "
    "payments, refunds). Skip totals, balances and summary lines.\n"
    "Return ONLY valid JSON (no markdown, no extra text) with this schema:\n"
    '{ "transactions": [ { "date": "YYYY-MM-DD", "description": string, '
    '"amount": number, "category": string|null } ] }\n'
    "amount is signed: purchases, fees and interest are negative; payments, "
    "refunds and credits are positive. Use a dot as decimal separator.\n"
    "If a line has no year, use the invoice's statement year.\n"
    "Choose category ONLY from the provided allowed list or null.\n"
    'If the document has no transactions return { "transactions": [] }.\n'
)


def _data_url(content: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def build_messages(
    content: bytes,
    mime_type: str,
    filename: str,
    allowed_categories: Iterable[str],
) -> list[dict]:
    """
    Chat messages for one extraction request. Images go in as image_url parts,
    PDFs as file parts.
    """
    if mime_type == "application/pdf":
        document_part = {
            "type": "file",
            "file": {"filename": filename, "file_data": _data_url(content, mime_type)},
        }
    else:
        document_part = {
            "type": "image_url",
            "image_url": {"url": _data_url(content, mime_type), "detail": "high"},
        }

    user_text = json.dumps(
        {"allowed_categories": sorted(set(allowed_categories))},
        ensure_ascii=False,
    )

    return [
        {"role": "system", "content": EXTRACTION_INSTRUCTIONS},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": user_text},
                document_part,
            ],
        },
    ]


def _upstream_message(err: openai.APIStatusError) -> str:
    body = err.body
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return str(err.message or err)


class OpenAIVisionClient:
    """One-shot extraction through the OpenAI chat completions API."""

    def __init__(self, model: Optional[str] = None, timeout: Optional[float] = None):
        self.model = model or config.VISION_MODEL
        self.timeout = timeout if timeout is not None else config.VISION_TIMEOUT_SECONDS

    def _client(self, api_key: str) -> OpenAI:
        return OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)

    def extract(
        self,
        content: bytes,
        mime_type: str,
        filename: str,
        api_key: str,
        allowed_categories: Iterable[str] = (),
    ) -> str:
        client = self._client(api_key)
        messages = build_messages(content, mime_type, filename, allowed_categories)

        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=0,
            )
        except openai.APITimeoutError as e:
            raise UpstreamTimeoutError(f"Vision API timed out after {self.timeout:g}s") from e
        except openai.APIConnectionError as e:
            raise TransientUpstreamError(f"Could not reach vision API: {e}") from e
        except openai.APIStatusError as e:
            message = f"Vision API returned HTTP {e.status_code}: {_upstream_message(e)}"
            if e.status_code >= 500:
                raise TransientUpstreamError(message) from e
            raise PermanentUpstreamError(message) from e

        if not resp.choices:
            raise MalformedExtractionError("Vision API returned no choices")

        choice = resp.choices[0]
        if getattr(choice, "finish_reason", None) == "length":
            raise MalformedExtractionError("Vision API answer was truncated")

        text = (choice.message.content or "").strip()
        if not text:
            refusal = getattr(choice.message, "refusal", None)
            raise MalformedExtractionError(f"Vision API returned no content{': ' + refusal if refusal else ''}")
        return text
