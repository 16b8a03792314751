import asyncio
from typing import Callable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from smart_split.db.session import create_sessionmaker, init_models
from smart_split.services.entities import Bill, DataDocument, Member
from smart_split.services.local_storage import LocalStorage


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Throwaway SQLite file per test; every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'smart_split.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def local_storage(sessionmaker):
    return LocalStorage(sessionmaker, scope="chat-1")


@pytest.fixture
def trio():
    return [
        Member(id="alice", name="Alice"),
        Member(id="bob", name="Bob"),
        Member(id="carol", name="Carol"),
    ]


def make_bill(bill_id: str, amount: float, payer: str, involved, title: str = "Bill", created_at: int = 1_700_000_000_000) -> Bill:
    return Bill(
        id=bill_id,
        title=title,
        amount=amount,
        payer_id=payer,
        involved_ids=tuple(involved),
        created_at=created_at,
    )


class FakeSubscription:
    def __init__(self, store: "FakeRoomStore", room_id: str, on_document, on_error) -> None:
        self.store = store
        self.room_id = room_id
        self.on_document = on_document
        self.on_error = on_error
        self.closed = False

    def push(self, document: DataDocument, version: int) -> None:
        if not self.closed:
            self.on_document(document, version)

    def close(self) -> None:
        self.closed = True


class FakeRoomStore:
    """In-memory room transport.

    Like a real listener, deliveries happen on a later loop iteration: the
    current document right after subscribing, then every write, including the
    subscriber's own. Every write gets a new version. Writes from another
    process are simulated with ``deliver``.
    """

    def __init__(self) -> None:
        self.documents: dict[str, DataDocument] = {}
        self.versions: dict[str, int] = {}
        self.published: list[tuple[str, DataDocument]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.fail_publish: Optional[Exception] = None

    async def publish(self, room_id: str, document: DataDocument) -> int:
        if self.fail_publish is not None:
            raise self.fail_publish
        self.published.append((room_id, document))
        return self._write(room_id, document)

    async def exists(self, room_id: str) -> bool:
        return room_id in self.documents

    def _write(self, room_id: str, document: DataDocument) -> int:
        self.documents[room_id] = document
        self.versions[room_id] = self.versions.get(room_id, 0) + 1
        version = self.versions[room_id]
        loop = asyncio.get_running_loop()
        for sub in self.subscriptions:
            if sub.room_id == room_id and not sub.closed:
                loop.call_soon(sub.push, document, version)
        return version

    def subscribe(self, room_id: str, *, on_document, on_error) -> FakeSubscription:
        sub = FakeSubscription(self, room_id, on_document, on_error)
        self.subscriptions.append(sub)

        if room_id in self.documents:
            asyncio.get_running_loop().call_soon(sub.push, self.documents[room_id], self.versions.get(room_id, 0))
        return sub

    def deliver(self, room_id: str, document: DataDocument) -> int:
        return self._write(room_id, document)

    def fail(self, room_id: str, exc: Exception) -> None:
        for sub in list(self.subscriptions):
            if sub.room_id == room_id and not sub.closed:
                sub.on_error(exc)


@pytest.fixture
def rooms():
    return FakeRoomStore()


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
