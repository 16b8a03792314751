from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from smart_split.errors import ReceiptRecognitionError

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

PROMPT = (
    "Analyze this receipt. Extract the merchant name (or a short description) as the title, "
    "and the total amount. Return JSON."
)

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING", "description": "Merchant name or short title of the bill"},
        "amount": {"type": "NUMBER", "description": "Grand total amount of the receipt"},
    },
    "required": ["title", "amount"],
}


@dataclass(frozen=True)
class ReceiptData:
    title: str
    amount: float


def _candidate_text(data: Any) -> str:
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class ReceiptRecognizer:
    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._transport = transport

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def recognize(self, image: bytes, mime_type: str = "image/jpeg") -> ReceiptData:
        if not self._api_key:
            raise ReceiptRecognitionError("Receipt recognition is not configured. Please enter the bill manually.")

        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(image).decode("ascii")}},
                        {"text": PROMPT},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0.0,
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    GEMINI_URL.format(model=self._model),
                    json=payload,
                    headers={"x-goog-api-key": self._api_key},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Receipt recognition request failed: %s", e)
            raise ReceiptRecognitionError("Could not read the receipt. Please enter the bill manually.") from e

        text = _candidate_text(data)
        try:
            parsed = json.loads(text)
            title = str(parsed["title"]).strip()
            amount = float(parsed["amount"])
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Receipt recognition returned an unusable reply: %r", text[:200])
            raise ReceiptRecognitionError("Could not read the receipt. Please enter the bill manually.") from e

        if not title or amount <= 0:
            raise ReceiptRecognitionError("Could not read the receipt. Please enter the bill manually.")
        return ReceiptData(title=title, amount=amount)
