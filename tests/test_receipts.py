import json

import httpx
import pytest

from smart_split.errors import ReceiptRecognitionError
from smart_split.services.receipts import ReceiptRecognizer


def _gemini_reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def _recognizer(handler, api_key="test-key"):
    return ReceiptRecognizer(
        api_key=api_key,
        model="gemini-2.5-flash",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


async def test_reads_title_and_total():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return _gemini_reply(json.dumps({"title": " Corner Cafe ", "amount": 18.4}))

    receipt = await _recognizer(handler).recognize(b"\xff\xd8jpeg", "image/jpeg")

    assert receipt.title == "Corner Cafe"
    assert receipt.amount == pytest.approx(18.4)
    assert requests[0].headers["x-goog-api-key"] == "test-key"
    body = json.loads(requests[0].content)
    assert body["contents"][0]["parts"][0]["inlineData"]["mimeType"] == "image/jpeg"


async def test_unconfigured_recognizer():
    recognizer = _recognizer(lambda request: _gemini_reply("{}"), api_key=None)
    assert not recognizer.available
    with pytest.raises(ReceiptRecognitionError):
        await recognizer.recognize(b"img")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="<html>"),
        _gemini_reply("not json"),
        _gemini_reply(json.dumps({"title": "Cafe"})),
        _gemini_reply(json.dumps({"title": "", "amount": 3})),
        _gemini_reply(json.dumps({"title": "Cafe", "amount": 0})),
        httpx.Response(200, json={"candidates": []}),
    ],
)
async def test_unusable_replies_raise(response):
    with pytest.raises(ReceiptRecognitionError):
        await _recognizer(lambda request: response).recognize(b"img")
