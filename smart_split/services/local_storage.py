from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smart_split.db.models import LocalRecord
from smart_split.services.entities import BILL_LIST, MEMBER_LIST, Bill, Member

logger = logging.getLogger(__name__)

MEMBERS_KEY = "members"
BILLS_KEY = "bills"


async def read_record(session: AsyncSession, *, scope: str, key: str) -> Optional[str]:
    return await session.scalar(select(LocalRecord.value).where(LocalRecord.scope == scope, LocalRecord.key == key))


async def write_record(session: AsyncSession, *, scope: str, key: str, value: str) -> None:
    record = await session.get(LocalRecord, (scope, key))
    if record is None:
        session.add(LocalRecord(scope=scope, key=key, value=value))
    else:
        record.value = value
    await session.flush()


async def delete_records(session: AsyncSession, *, scope: str) -> None:
    await session.execute(delete(LocalRecord).where(LocalRecord.scope == scope))


class LocalStorage:
    """Durable per-scope copy of the member and bill collections.

    The two collections are stored independently; a missing or unreadable one
    loads as ``None`` so the caller can fall back to its defaults.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], *, scope: str) -> None:
        self._sessionmaker = sessionmaker
        self.scope = scope

    async def _load(self, key: str, adapter):
        async with self._sessionmaker() as session:
            raw = await read_record(session, scope=self.scope, key=key)
        if raw is None:
            return None
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable local %s record for scope=%s", key, self.scope)
            return None

    async def load_members(self) -> Optional[list[Member]]:
        return await self._load(MEMBERS_KEY, MEMBER_LIST)

    async def load_bills(self) -> Optional[list[Bill]]:
        return await self._load(BILLS_KEY, BILL_LIST)

    async def save(self, members: Sequence[Member], bills: Sequence[Bill]) -> None:
        async with self._sessionmaker() as session:
            await write_record(
                session,
                scope=self.scope,
                key=MEMBERS_KEY,
                value=MEMBER_LIST.dump_json(list(members), by_alias=True).decode("utf-8"),
            )
            await write_record(
                session,
                scope=self.scope,
                key=BILLS_KEY,
                value=BILL_LIST.dump_json(list(bills), by_alias=True).decode("utf-8"),
            )
            await session.commit()

    async def clear(self) -> None:
        async with self._sessionmaker() as session:
            await delete_records(session, scope=self.scope)
            await session.commit()
