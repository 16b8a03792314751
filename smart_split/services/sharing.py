from __future__ import annotations

import base64
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import httpx

from smart_split.errors import SnapshotTooLargeError
from smart_split.services.entities import Bill, DataDocument, Member

logger = logging.getLogger(__name__)

SNAPSHOT_PARAM = "data"
ROOM_PARAM = "room"


@dataclass(frozen=True)
class Snapshot:
    members: list[Member]
    bills: list[Bill]


@dataclass(frozen=True)
class LaunchParams:
    room_id: Optional[str] = None
    snapshot_token: Optional[str] = None


def _number(x: float) -> Any:
    return int(x) if float(x).is_integer() else x


def minify(members: Sequence[Member], bills: Sequence[Bill]) -> dict[str, list]:
    # Tuple positions are part of the token format; never reorder them.
    return {
        "m": [[m.id, m.name] for m in members],
        "b": [[b.id, b.title, _number(b.amount), b.payer_id, list(b.involved_ids), b.created_at] for b in bills],
    }


def _unminify_member(row: Any) -> Member:
    if not isinstance(row, list) or len(row) != 2:
        raise ValueError("member tuple must have 2 fields")
    return Member(id=row[0], name=row[1])


def _unminify_bill(row: Any) -> Bill:
    if not isinstance(row, list) or len(row) != 6:
        raise ValueError("bill tuple must have 6 fields")
    if not isinstance(row[4], list):
        raise ValueError("involved ids must be a list")
    return Bill(
        id=row[0],
        title=row[1],
        amount=row[2],
        payer_id=row[3],
        involved_ids=tuple(row[4]),
        created_at=row[5],
    )


def encode_snapshot(members: Sequence[Member], bills: Sequence[Bill]) -> str:
    raw = json.dumps(minify(members, bills), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    # Standard alphabet, as browsers produce with btoa(); URLs carry it percent-quoted.
    return base64.b64encode(raw).decode("ascii")


def decode_snapshot(token: str) -> Optional[Snapshot]:
    """Inverse of :func:`encode_snapshot`; ``None`` for anything that is not a valid snapshot.

    Both base64 alphabets are accepted, with or without padding. A "+" that a
    query parser turned into a space is read back as "+".
    """
    try:
        text = token.strip().replace(" ", "-").replace("+", "-").replace("/", "_")
        text += "=" * (-len(text) % 4)
        data = json.loads(base64.urlsafe_b64decode(text.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeError) as e:
        logger.warning("Snapshot token is not decodable: %s", e)
        return None

    if not isinstance(data, dict) or not isinstance(data.get("m"), list) or not isinstance(data.get("b"), list):
        logger.warning("Snapshot token has an unexpected shape")
        return None

    try:
        members = [_unminify_member(row) for row in data["m"]]
        bills = [_unminify_bill(row) for row in data["b"]]
        # Same id uniqueness rules as a backup or room document.
        DataDocument(members=members, bills=bills)
    except (TypeError, ValueError) as e:
        logger.warning("Snapshot token has invalid entries: %s", e)
        return None
    return Snapshot(members=members, bills=bills)


def build_snapshot_url(members: Sequence[Member], bills: Sequence[Bill], base_url: str) -> str:
    parts = urlsplit(base_url)
    query = urlencode({SNAPSHOT_PARAM: encode_snapshot(members, bills)})
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, ""))


def build_room_url(room_id: str, base_url: str) -> str:
    parts = urlsplit(base_url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode({ROOM_PARAM: room_id}), ""))


def parse_launch_url(url: str) -> LaunchParams:
    query = parse_qs(urlsplit(url.strip()).query)
    room = (query.get(ROOM_PARAM) or [None])[0]
    token = (query.get(SNAPSHOT_PARAM) or [None])[0]
    return LaunchParams(room_id=room or None, snapshot_token=token or None)


def strip_snapshot_param(url: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, values in parse_qs(parts.query).items() if k != SNAPSHOT_PARAM for v in values]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def check_share_length(url: str, limit: int) -> None:
    if len(url) > limit:
        raise SnapshotTooLargeError(len(url), limit)


class LinkShortener:
    def __init__(
        self,
        *,
        endpoint: str,
        max_url_length: int,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoint = endpoint
        self._max_url_length = max_url_length
        self._timeout = timeout
        self._transport = transport

    async def shorten(self, long_url: str) -> str:
        """Shortened URL, or ``long_url`` itself when the service cannot help."""
        if len(long_url) > self._max_url_length:
            logger.warning("URL too long for shortener (%d chars), keeping original", len(long_url))
            return long_url

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(self._endpoint, params={"url": long_url})
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Shortener failed, falling back to long URL: %s", e)
            return long_url

        short = resp.text.strip()
        if short.startswith("http"):
            return short
        logger.warning("Shortener returned a non-URL reply, keeping original")
        return long_url
