from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from smart_split.errors import RoomNotFoundError
from smart_split.services.entities import DataDocument, default_members
from smart_split.services.local_storage import LocalStorage
from smart_split.services.rooms import RoomStore
from smart_split.services.sharing import (
    LaunchParams,
    LinkShortener,
    build_room_url,
    build_snapshot_url,
    check_share_length,
    decode_snapshot,
)
from smart_split.state.store import LocalPersistence, StateStore
from smart_split.state.sync import SyncCoordinator, SyncStatus

logger = logging.getLogger(__name__)


class InitSource(str, enum.Enum):
    ROOM = "room"
    SNAPSHOT = "snapshot"
    LOCAL = "local"
    DEFAULT = "default"


@dataclass(frozen=True)
class InitResult:
    source: InitSource
    # A snapshot token was supplied but could not be decoded.
    snapshot_rejected: bool = False
    # A room was requested but live sync is not configured.
    room_unavailable: bool = False
    # A room was requested but it does not exist.
    room_missing: bool = False


@dataclass(frozen=True)
class ShareLink:
    url: str
    shortened: bool


class AppState:
    """Everything one editing session owns: the store, its persistence strategies and sync.

    Lifecycle: construct, ``await open(launch)`` exactly once, use, then
    ``await close()``. After close no remote update reaches the store.
    """

    def __init__(
        self,
        *,
        local: LocalStorage,
        rooms: Optional[RoomStore],
        shortener: LinkShortener,
        base_url: str,
        max_url_length: int,
        default_member_count: int,
        sync_debounce_seconds: float,
    ) -> None:
        self.store = StateStore()
        self.local = LocalPersistence(self.store, local)
        self.sync = SyncCoordinator(
            self.store,
            rooms=rooms,
            debounce_seconds=sync_debounce_seconds,
            fallback=self.local,
        )
        self._shortener = shortener
        self._base_url = base_url
        self._max_url_length = max_url_length
        self._default_member_count = default_member_count
        self._opened = False
        self._closed = False

    @property
    def scope(self) -> str:
        return self.local.storage.scope

    async def open(self, launch: LaunchParams = LaunchParams()) -> InitResult:
        """Resolve the initial state: room, then snapshot token, then local record, then defaults."""
        if self._opened:
            raise RuntimeError("AppState.open() called twice")
        self._opened = True

        room_unavailable = False
        room_missing = False
        if launch.room_id:
            try:
                joined = await self.sync.join(launch.room_id)
            except RoomNotFoundError:
                joined = False
                room_missing = True
            if joined:
                return InitResult(source=InitSource.ROOM)
            room_unavailable = not room_missing

        snapshot_rejected = False
        if launch.snapshot_token:
            snapshot = decode_snapshot(launch.snapshot_token)
            if snapshot is not None:
                self.store.use(self.local)
                self.store.replace(snapshot.members, snapshot.bills)
                logger.info("Session %s loaded from snapshot", self.scope)
                return InitResult(
                    source=InitSource.SNAPSHOT, room_unavailable=room_unavailable, room_missing=room_missing
                )
            snapshot_rejected = True

        members = await self.local.storage.load_members()
        bills = await self.local.storage.load_bills()
        source = InitSource.LOCAL if members is not None or bills is not None else InitSource.DEFAULT

        self.store.use(self.local)
        self.store.replace(
            members if members is not None else default_members(self._default_member_count),
            bills if bills is not None else [],
        )
        return InitResult(
            source=source,
            snapshot_rejected=snapshot_rejected,
            room_unavailable=room_unavailable,
            room_missing=room_missing,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.sync.active:
            await self.sync.close()
        else:
            await self.local.flush()

    async def reset(self) -> None:
        """Back to the default roster with no bills."""
        if not self.sync.active:
            await self.local.clear()
        self.store.replace(default_members(self._default_member_count), [])

    def apply_import(self, document: DataDocument) -> None:
        # Callers must have confirmed the overwrite with the user.
        self.store.replace(document.members, document.bills)

    def snapshot_url(self) -> str:
        return build_snapshot_url(self.store.members, self.store.bills, self._base_url)

    async def share_link(self) -> ShareLink:
        """Snapshot link, shortened when possible.

        Raises :class:`SnapshotTooLargeError` before any network call when the
        link would be too long to share.
        """
        url = self.snapshot_url()
        check_share_length(url, self._max_url_length)
        short = await self._shortener.shorten(url)
        return ShareLink(url=short, shortened=short != url)

    def room_url(self) -> Optional[str]:
        if self.sync.room_id is None:
            return None
        return build_room_url(self.sync.room_id, self._base_url)

    @property
    def status(self) -> SyncStatus:
        return self.sync.status
