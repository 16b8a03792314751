from __future__ import annotations

import asyncio
import logging
import secrets
import string
from collections.abc import Callable
from typing import Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smart_split.db.models import Room
from smart_split.errors import RoomTransportError
from smart_split.services.entities import DataDocument

logger = logging.getLogger(__name__)

ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits
ROOM_ID_LENGTH = 6

OnDocument = Callable[[DataDocument, int], None]  # document, version
OnError = Callable[[Exception], None]


def new_room_id() -> str:
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))


class RoomSubscription(Protocol):
    def close(self) -> None: ...


class RoomStore(Protocol):
    """Key-value room transport: whole-document writes, push-style reads.

    Every write gets a new version number. Writers use the returned version to
    recognise their own writes when they come back through a subscription.
    """

    async def publish(self, room_id: str, document: DataDocument) -> int: ...

    async def exists(self, room_id: str) -> bool: ...

    def subscribe(self, room_id: str, *, on_document: OnDocument, on_error: OnError) -> RoomSubscription: ...


class _PollingSubscription:
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    def close(self) -> None:
        if not self._task.done():
            self._task.cancel()

    @property
    def closed(self) -> bool:
        return self._task.done()


class SqlRoomStore:
    """Rooms kept in a shared SQL table, observed by polling.

    A subscription delivers the current document, then every newer version.
    One store instance is shared by every session of the process, so it does
    not filter writes by origin.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], *, poll_seconds: float) -> None:
        self._sessionmaker = sessionmaker
        self._poll_seconds = poll_seconds

    async def publish(self, room_id: str, document: DataDocument) -> int:
        payload = document.model_dump_json(by_alias=True)
        try:
            async with self._sessionmaker() as session:
                room = await session.get(Room, room_id, with_for_update=True)
                if room is None:
                    room = Room(room_id=room_id, document=payload, version=1, updated_at=document.updated_at)
                    session.add(room)
                else:
                    room.document = payload
                    room.version = room.version + 1
                    room.updated_at = document.updated_at
                await session.commit()
                version = room.version
        except SQLAlchemyError as e:
            raise RoomTransportError(f"Could not write room {room_id}.") from e
        return version

    async def exists(self, room_id: str) -> bool:
        try:
            async with self._sessionmaker() as session:
                found = await session.scalar(select(Room.room_id).where(Room.room_id == room_id))
        except SQLAlchemyError as e:
            raise RoomTransportError(f"Could not reach room {room_id}.") from e
        return found is not None

    def subscribe(self, room_id: str, *, on_document: OnDocument, on_error: OnError) -> _PollingSubscription:
        task = asyncio.create_task(self._poll(room_id, on_document, on_error))
        return _PollingSubscription(task)

    def _parse(self, room_id: str, raw: str) -> Optional[DataDocument]:
        try:
            return DataDocument.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed document in room %s", room_id)
            return None

    async def _poll(self, room_id: str, on_document: OnDocument, on_error: OnError) -> None:
        last_version: Optional[int] = None
        try:
            while True:
                async with self._sessionmaker() as session:
                    row = (
                        await session.execute(select(Room.version, Room.document).where(Room.room_id == room_id))
                    ).first()

                if row is not None and row.version != last_version:
                    last_version = row.version
                    doc = self._parse(room_id, row.document)
                    if doc is not None:
                        on_document(doc, row.version)

                await asyncio.sleep(self._poll_seconds)
        except SQLAlchemyError as e:
            logger.warning("Room %s polling failed: %s", room_id, e)
            on_error(RoomTransportError(f"Lost connection to room {room_id}."))
