import base64
import json

import httpx
import pytest

from smart_split.errors import SnapshotTooLargeError
from smart_split.services.entities import Member
from smart_split.services.sharing import (
    LaunchParams,
    LinkShortener,
    build_room_url,
    build_snapshot_url,
    check_share_length,
    decode_snapshot,
    encode_snapshot,
    minify,
    parse_launch_url,
    strip_snapshot_param,
)
from tests.conftest import make_bill

BASE = "https://split.example.org/app"


def _token(payload) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def test_snapshot_preserves_members_and_bills(trio):
    bills = [
        make_bill("b1", 12.75, "alice", ["alice", "carol"], title="Café crème", created_at=1_700_000_000_123),
        make_bill("b2", 300, "bob", ["alice", "bob", "carol"], title="Dinner"),
    ]
    trio[0] = Member(id="alice", name="Алиса")

    snapshot = decode_snapshot(encode_snapshot(trio, bills))

    assert snapshot is not None
    assert snapshot.members == trio
    assert snapshot.bills == bills


def test_minified_layout_is_positional(trio):
    data = minify(trio[:1], [make_bill("b1", 300, "alice", ["alice"], title="Dinner", created_at=5)])
    assert data == {"m": [["alice", "Alice"]], "b": [["b1", "Dinner", 300, "alice", ["alice"], 5]]}


def test_empty_snapshot(trio):
    snapshot = decode_snapshot(encode_snapshot([], []))
    assert snapshot is not None
    assert snapshot.members == [] and snapshot.bills == []


@pytest.mark.parametrize(
    "token",
    [
        "",
        "%%%not-base64%%%",
        base64.urlsafe_b64encode(b"not json").decode(),
        _token([1, 2, 3]),
        _token({"m": []}),
        _token({"m": "x", "b": []}),
        _token({"m": [["only-id"]], "b": []}),
        _token({"m": [], "b": [["b1", "Dinner", 10, "alice", ["alice"]]]}),
        _token({"m": [], "b": [["b1", "Dinner", 10, "alice", "alice", 5]]}),
        _token({"m": [], "b": [["b1", "Dinner", -10, "alice", ["alice"], 5]]}),
        _token({"m": [], "b": [["b1", "Dinner", 10, "alice", [], 5]]}),
        _token({"m": [["x", "One"], ["x", "Two"]], "b": []}),
        _token({"m": [], "b": [["b1", "A", 10, "alice", ["alice"], 5], ["b1", "B", 20, "alice", ["alice"], 6]]}),
    ],
)
def test_invalid_tokens_decode_to_none(token):
    assert decode_snapshot(token) is None


def test_standard_alphabet_and_missing_padding_are_accepted():
    payload = {"m": [["m?>", "Zoë ~~~"]], "b": []}
    standard = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii").rstrip("=")

    snapshot = decode_snapshot(standard)

    assert snapshot is not None
    assert snapshot.members == [Member(id="m?>", name="Zoë ~~~")]


def test_snapshot_url_round_trips_through_launch_params(trio):
    url = build_snapshot_url(trio, [], BASE)

    assert url.startswith(BASE + "?data=")
    params = parse_launch_url(url)
    assert params.room_id is None
    assert decode_snapshot(params.snapshot_token).members == trio


def test_room_url_and_launch_params():
    url = build_room_url("AB12CD", BASE)
    assert url == BASE + "?room=AB12CD"
    assert parse_launch_url(url) == LaunchParams(room_id="AB12CD")


def test_launch_params_without_query():
    assert parse_launch_url(BASE) == LaunchParams()


def test_strip_snapshot_param_keeps_other_params():
    url = strip_snapshot_param(BASE + "?data=abc&lang=en")
    assert url == BASE + "?lang=en"


def test_check_share_length():
    check_share_length("x" * 8000, 8000)
    with pytest.raises(SnapshotTooLargeError) as info:
        check_share_length("x" * 8001, 8000)
    assert info.value.length == 8001
    assert "/export" in str(info.value)


class TestLinkShortener:
    def _shortener(self, handler, max_len=2500):
        return LinkShortener(
            endpoint="https://short.example/api",
            max_url_length=max_len,
            timeout=1.0,
            transport=httpx.MockTransport(handler),
        )

    async def test_returns_short_url(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params["url"])
            return httpx.Response(200, text="https://short.example/xyz\n")

        short = await self._shortener(handler).shorten(BASE + "?data=abc")

        assert short == "https://short.example/xyz"
        assert seen == [BASE + "?data=abc"]

    async def test_service_error_falls_back(self):
        short = await self._shortener(lambda request: httpx.Response(500)).shorten(BASE)
        assert short == BASE

    async def test_network_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert await self._shortener(handler).shorten(BASE) == BASE

    async def test_non_url_reply_falls_back(self):
        short = await self._shortener(lambda request: httpx.Response(200, text="Error: invalid")).shorten(BASE)
        assert short == BASE

    async def test_long_url_skips_the_service(self):
        def handler(request):
            raise AssertionError("shortener must not be called")

        long_url = BASE + "?data=" + "a" * 3000
        assert await self._shortener(handler).shorten(long_url) == long_url


def test_duplicate_member_ids_are_rejected():
    token = encode_snapshot([Member(id="x", name="One"), Member(id="x", name="Two")], [])
    assert decode_snapshot(token) is None


def test_tokens_use_the_browser_alphabet():
    # Any aligned run of three "~" bytes encodes to "fn5+".
    members = [Member(id="m-1", name="~~~~~~")]
    token = encode_snapshot(members, [])

    assert "+" in token
    assert token == base64.b64encode(json.dumps(minify(members, []), separators=(",", ":")).encode()).decode()


def test_standard_token_survives_the_url(trio):
    members = [Member(id="m-1", name="~~~~~~")] + trio
    url = build_snapshot_url(members, [], BASE)

    assert "+" not in url and "/" not in url.split("?", 1)[1]
    assert decode_snapshot(parse_launch_url(url).snapshot_token).members == members


def test_plus_turned_into_space_still_decodes():
    members = [Member(id="m-1", name="~~~~~~")]
    token = encode_snapshot(members, [])
    assert "+" in token

    assert decode_snapshot(token.replace("+", " ")).members == members
