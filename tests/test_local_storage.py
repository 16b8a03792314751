from smart_split.db.models import LocalRecord
from smart_split.services.local_storage import BILLS_KEY, MEMBERS_KEY, LocalStorage
from tests.conftest import make_bill


async def test_empty_scope_loads_nothing(local_storage):
    assert await local_storage.load_members() is None
    assert await local_storage.load_bills() is None


async def test_save_and_load(local_storage, trio):
    bills = [make_bill("b1", 30, "alice", ["alice", "bob"])]

    await local_storage.save(trio, bills)
    await local_storage.save(trio[:2], bills)

    assert await local_storage.load_members() == trio[:2]
    assert await local_storage.load_bills() == bills


async def test_scopes_are_isolated(sessionmaker, local_storage, trio):
    other = LocalStorage(sessionmaker, scope="chat-2")

    await local_storage.save(trio, [])

    assert await other.load_members() is None
    assert await local_storage.load_members() == trio


async def test_unreadable_record_loads_as_missing(sessionmaker, local_storage, trio):
    await local_storage.save(trio, [])
    async with sessionmaker() as session:
        record = await session.get(LocalRecord, ("chat-1", BILLS_KEY))
        record.value = "{broken"
        await session.commit()

    assert await local_storage.load_bills() is None
    assert await local_storage.load_members() == trio


async def test_clear_removes_both_records(sessionmaker, local_storage, trio):
    await local_storage.save(trio, [])
    await local_storage.clear()

    assert await local_storage.load_members() is None
    async with sessionmaker() as session:
        assert await session.get(LocalRecord, ("chat-1", MEMBERS_KEY)) is None
