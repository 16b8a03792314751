from __future__ import annotations

import enum
import logging
from collections import deque
from collections.abc import Callable
from typing import Optional

from smart_split.errors import RoomNotFoundError, RoomTransportError
from smart_split.services.entities import DataDocument, now_ms
from smart_split.services.rooms import RoomStore, RoomSubscription, new_room_id
from smart_split.state.debounce import CoalescingTask
from smart_split.state.store import Persistence, Provenance, StateChange, StateStore

logger = logging.getLogger(__name__)


class SyncStatus(str, enum.Enum):
    OFFLINE = "offline"
    CONNECTING = "connecting"
    ONLINE = "online"
    ERROR = "error"


StatusListener = Callable[[SyncStatus], None]


class SyncCoordinator:
    """Bridges a :class:`StateStore` to a remote room.

    While a room is active the coordinator is the store's persistence strategy:
    local changes are pushed as whole documents after a quiet period, and
    inbound documents are applied with remote provenance so they are never
    pushed back.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        rooms: Optional[RoomStore],
        debounce_seconds: float,
        fallback: Optional[Persistence] = None,
    ) -> None:
        self._store = store
        self._rooms = rooms
        self._fallback = fallback
        self._subscription: Optional[RoomSubscription] = None
        self._generation = 0
        # Versions this coordinator wrote; they come back through the subscription.
        self._own_versions: deque[int] = deque(maxlen=64)
        self._push = CoalescingTask(self._push_now, delay=debounce_seconds, name="room-push")
        self._status_listeners: list[StatusListener] = []

        self.status = SyncStatus.OFFLINE
        self.room_id: Optional[str] = None
        self.last_error: Optional[Exception] = None

    @property
    def configured(self) -> bool:
        return self._rooms is not None

    @property
    def active(self) -> bool:
        return self.room_id is not None

    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    async def start_session(self) -> Optional[str]:
        """Create a room seeded with the current state. ``None`` when sync is not configured."""
        if self._rooms is None:
            logger.info("Room sync is not configured; staying offline")
            return None

        room_id = new_room_id()
        self._enter(room_id)
        try:
            self._own_versions.append(await self._rooms.publish(room_id, self._document()))
        except RoomTransportError as e:
            self._fail(e)
            return room_id
        self._subscribe(room_id)
        logger.info("Started room %s", room_id)
        return room_id

    async def join(self, room_id: str) -> bool:
        """Follow an existing room; the room's document replaces local state once it arrives.

        Returns False when sync is not configured. Raises :class:`RoomNotFoundError`
        when nobody ever wrote to ``room_id``.
        """
        if self._rooms is None:
            logger.info("Room sync is not configured; cannot join %s", room_id)
            return False
        try:
            found = await self._rooms.exists(room_id)
        except RoomTransportError as e:
            self._enter(room_id)
            self._fail(e)
            return True
        if not found:
            logger.info("Room %s does not exist", room_id)
            raise RoomNotFoundError(room_id)
        self._enter(room_id)
        self._subscribe(room_id)
        logger.info("Joining room %s", room_id)
        return True

    async def reconnect(self) -> bool:
        """Explicit retry after a transport failure."""
        if self._rooms is None or self.room_id is None:
            return False
        self._close_subscription()
        self._set_status(SyncStatus.CONNECTING)
        self._subscribe(self.room_id)
        return True

    async def disconnect(self) -> None:
        """Leave the room and hand persistence back to the local strategy."""
        if self.room_id is None:
            return
        if self.status is SyncStatus.ONLINE:
            await self._push.flush()
        self._push.cancel()
        self._close_subscription()
        logger.info("Left room %s", self.room_id)
        self.room_id = None
        self.last_error = None
        self._set_status(SyncStatus.OFFLINE)

        self._store.use(self._fallback)
        if self._fallback is not None:
            self._fallback.persist(
                StateChange(members=self._store.members, bills=self._store.bills, provenance=Provenance.LOCAL)
            )

    async def close(self) -> None:
        """Teardown: deliver a waiting push, then stop all inbound delivery."""
        if self.status is SyncStatus.ONLINE:
            await self._push.flush()
        self._push.cancel()
        self._close_subscription()

    def persist(self, change: StateChange) -> None:
        if change.provenance is Provenance.REMOTE:
            return
        if self.status is not SyncStatus.ONLINE:
            # Connecting: the room's document is still authoritative. Error: outbound is halted.
            return
        self._push.schedule()

    def _enter(self, room_id: str) -> None:
        self._close_subscription()
        self._push.cancel()
        self._own_versions.clear()
        self.room_id = room_id
        self.last_error = None
        self._store.use(self)
        self._set_status(SyncStatus.CONNECTING)

    def _subscribe(self, room_id: str) -> None:
        self._generation += 1
        generation = self._generation

        def on_document(doc: DataDocument, version: int) -> None:
            if generation != self._generation:
                return
            self._apply_remote(doc, version)

        def on_error(exc: Exception) -> None:
            if generation != self._generation:
                return
            self._fail(exc)

        self._subscription = self._rooms.subscribe(room_id, on_document=on_document, on_error=on_error)

    def _close_subscription(self) -> None:
        # Bumping the generation drops callbacks that are already in flight.
        self._generation += 1
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _apply_remote(self, doc: DataDocument, version: int) -> None:
        # While connecting the room is adopted as is, even if this coordinator wrote it.
        if self.status is SyncStatus.ONLINE and version in self._own_versions:
            return
        self._store.replace(doc.members, doc.bills, provenance=Provenance.REMOTE)
        if self.status is SyncStatus.CONNECTING:
            self._set_status(SyncStatus.ONLINE)

    def _fail(self, exc: Exception) -> None:
        logger.warning("Room %s sync failed: %s", self.room_id, exc)
        self.last_error = exc
        self._push.cancel()
        self._close_subscription()
        self._set_status(SyncStatus.ERROR)

    async def _push_now(self) -> None:
        if self.status is not SyncStatus.ONLINE or self.room_id is None:
            return
        try:
            self._own_versions.append(await self._rooms.publish(self.room_id, self._document()))
        except RoomTransportError as e:
            self._fail(e)

    def _document(self) -> DataDocument:
        return DataDocument(members=self._store.members, bills=self._store.bills, updated_at=now_ms())

    def _set_status(self, status: SyncStatus) -> None:
        if status is self.status:
            return
        logger.info("Sync status %s -> %s", self.status.value, status.value)
        self.status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Sync status listener failed")
