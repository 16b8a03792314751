import httpx
import pytest
import pytest_asyncio

from smart_split.errors import SnapshotTooLargeError
from smart_split.services.entities import DataDocument
from smart_split.services.local_storage import LocalStorage
from smart_split.services.rooms import SqlRoomStore
from smart_split.services.sharing import LaunchParams, LinkShortener, encode_snapshot
from smart_split.state.app import AppState, InitSource
from smart_split.state.sync import SyncStatus
from tests.conftest import make_bill, wait_for

BASE = "https://split.example.org/"


class ShortenerSpy:
    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, text="https://short.example/abc")


@pytest.fixture
def spy():
    return ShortenerSpy()


@pytest_asyncio.fixture
async def make_app(local_storage, rooms, spy):
    apps = []

    def factory(*, rooms_enabled=True, max_url_length=8000):
        app = AppState(
            local=local_storage,
            rooms=rooms if rooms_enabled else None,
            shortener=LinkShortener(
                endpoint="https://short.example/api",
                max_url_length=2500,
                timeout=1.0,
                transport=httpx.MockTransport(spy),
            ),
            base_url=BASE,
            max_url_length=max_url_length,
            default_member_count=11,
            sync_debounce_seconds=0.02,
        )
        apps.append(app)
        return app

    yield factory
    for app in apps:
        await app.close()


async def test_first_launch_gets_default_roster(make_app):
    app = make_app()

    result = await app.open()

    assert result.source is InitSource.DEFAULT
    assert len(app.store.members) == 11
    assert app.store.members[0].name == "Member 1"
    assert app.store.bills == ()
    assert app.status is SyncStatus.OFFLINE


async def test_local_state_survives_restart(make_app):
    app = make_app()
    await app.open()
    app.store.add_bill(title="Lunch", amount=20, payer_id="m-1", involved_ids=["m-1", "m-2"])
    await app.close()

    again = make_app()
    result = await again.open()

    assert result.source is InitSource.LOCAL
    assert again.store.bills[0].title == "Lunch"


async def test_snapshot_wins_over_local(make_app, local_storage, trio):
    await local_storage.save(trio[:2], [])
    bills = [make_bill("b1", 300, "alice", ["alice", "bob", "carol"])]

    app = make_app()
    result = await app.open(LaunchParams(snapshot_token=encode_snapshot(trio, bills)))
    await app.close()

    assert result.source is InitSource.SNAPSHOT
    assert list(app.store.members) == trio
    # The adopted snapshot becomes the local copy.
    assert await local_storage.load_bills() == bills


async def test_rejected_snapshot_falls_back_to_local(make_app, local_storage, trio):
    await local_storage.save(trio, [])

    app = make_app()
    result = await app.open(LaunchParams(snapshot_token="definitely-not-a-snapshot"))

    assert result.source is InitSource.LOCAL
    assert result.snapshot_rejected
    assert list(app.store.members) == trio


async def test_room_wins_over_everything(make_app, rooms, trio):
    rooms.documents["ROOM42"] = DataDocument(members=trio[:2])

    app = make_app()
    result = await app.open(LaunchParams(room_id="ROOM42", snapshot_token=encode_snapshot(trio, [])))

    assert result.source is InitSource.ROOM
    await wait_for(lambda: app.status is SyncStatus.ONLINE)
    assert list(app.store.members) == trio[:2]
    assert app.room_url() == BASE + "?room=ROOM42"
    await app.close()


async def test_room_without_sync_backend(make_app, trio):
    app = make_app(rooms_enabled=False)

    result = await app.open(LaunchParams(room_id="ROOM42", snapshot_token=encode_snapshot(trio, [])))

    assert result.source is InitSource.SNAPSHOT
    assert result.room_unavailable
    assert app.room_url() is None


async def test_open_twice_is_an_error(make_app):
    app = make_app()
    await app.open()
    with pytest.raises(RuntimeError):
        await app.open()


async def test_share_link_is_shortened(make_app, spy):
    app = make_app()
    await app.open()

    link = await app.share_link()

    assert link.url == "https://short.example/abc"
    assert link.shortened
    assert spy.requests[0].url.params["url"] == app.snapshot_url()


async def test_oversized_share_link_is_refused_before_network(make_app, spy):
    app = make_app(max_url_length=200)
    await app.open()
    members, bills = app.store.members, app.store.bills

    with pytest.raises(SnapshotTooLargeError):
        await app.share_link()

    assert spy.requests == []
    assert app.store.members == members
    assert app.store.bills == bills


async def test_reset_restores_defaults(make_app, local_storage):
    app = make_app()
    await app.open()
    app.store.remove_member("m-11")
    app.store.add_bill(title="Lunch", amount=20, payer_id="m-1", involved_ids=["m-1"])

    await app.reset()
    await app.close()

    assert len(app.store.members) == 11
    assert app.store.bills == ()
    assert await local_storage.load_bills() == []


async def test_import_replaces_state(make_app, trio):
    app = make_app()
    await app.open()

    app.apply_import(DataDocument(members=trio, bills=(make_bill("b1", 5, "bob", ["bob"]),)))

    assert list(app.store.members) == trio
    assert app.store.bills[0].id == "b1"


async def test_room_session_pushes_edits(make_app, rooms):
    app = make_app()
    await app.open()

    room_id = await app.sync.start_session()
    await wait_for(lambda: app.status is SyncStatus.ONLINE)
    app.store.add_member("Zed")

    await wait_for(lambda: len(rooms.published) == 2)
    assert rooms.published[-1][0] == room_id
    assert rooms.published[-1][1].members[-1].name == "Zed"
    await app.close()


async def test_missing_room_falls_back_to_local(make_app, local_storage, trio):
    await local_storage.save(trio, [])
    app = make_app()

    result = await app.open(LaunchParams(room_id="NOPE00"))

    assert result.source is InitSource.LOCAL
    assert result.room_missing
    assert not result.room_unavailable
    assert app.status is SyncStatus.OFFLINE
    assert list(app.store.members) == trio


async def test_two_chats_share_a_room_through_one_store(sessionmaker):
    # The bot serves every chat from a single room store.
    room_store = SqlRoomStore(sessionmaker, poll_seconds=0.01)

    def chat(scope):
        return AppState(
            local=LocalStorage(sessionmaker, scope=scope),
            rooms=room_store,
            shortener=LinkShortener(endpoint="https://short.example/api", max_url_length=2500, timeout=1.0),
            base_url=BASE,
            max_url_length=8000,
            default_member_count=3,
            sync_debounce_seconds=0.01,
        )

    first, second = chat("chat-a"), chat("chat-b")
    try:
        await first.open()
        room_id = await first.sync.start_session()
        result = await second.open(LaunchParams(room_id=room_id))
        assert result.source is InitSource.ROOM
        await wait_for(lambda: first.status is SyncStatus.ONLINE and second.status is SyncStatus.ONLINE)

        first.store.add_bill(title="Taxi", amount=30, payer_id="m-1", involved_ids=["m-1", "m-2"])
        await wait_for(lambda: len(second.store.bills) == 1)

        second.store.rename_member("m-2", "Bea")
        await wait_for(lambda: first.store.member("m-2").name == "Bea")
        assert first.store.bills == second.store.bills
    finally:
        await first.close()
        await second.close()
