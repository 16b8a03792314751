from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smart_split.config import Settings
from smart_split.services.local_storage import LocalStorage
from smart_split.services.rooms import RoomStore
from smart_split.services.sharing import LaunchParams, LinkShortener
from smart_split.state.app import AppState, InitResult

logger = logging.getLogger(__name__)

ChangeListener = Callable[[int], None]


class AppRegistry:
    """One :class:`AppState` per Telegram chat, opened lazily and closed on shutdown."""

    def __init__(
        self,
        *,
        sessionmaker: async_sessionmaker[AsyncSession],
        rooms: Optional[RoomStore],
        shortener: LinkShortener,
        settings: Settings,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._rooms = rooms
        self._shortener = shortener
        self._settings = settings
        self._apps: dict[int, AppState] = {}
        self._lock = asyncio.Lock()
        self._listeners: list[ChangeListener] = []

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def peek(self, chat_id: int) -> Optional[AppState]:
        return self._apps.get(chat_id)

    async def get(self, chat_id: int) -> AppState:
        app = self._apps.get(chat_id)
        if app is not None:
            return app
        app, _ = await self.open(chat_id)
        return app

    async def open(self, chat_id: int, launch: LaunchParams = LaunchParams()) -> tuple[AppState, InitResult]:
        """(Re)start the chat's session with the given launch parameters."""
        async with self._lock:
            previous = self._apps.pop(chat_id, None)
            if previous is not None:
                await previous.close()

            app = self._build(chat_id)
            result = await app.open(launch)
            self._apps[chat_id] = app

        app.store.subscribe(lambda _change: self._notify(chat_id))
        app.sync.on_status(lambda _status: self._notify(chat_id))
        logger.info("Opened session for chat %s from %s", chat_id, result.source.value)
        return app, result

    async def close_all(self) -> None:
        async with self._lock:
            apps = list(self._apps.values())
            self._apps.clear()
        for app in apps:
            try:
                await app.close()
            except Exception:
                logger.exception("Failed to close session %s", app.scope)

    def _build(self, chat_id: int) -> AppState:
        s = self._settings
        return AppState(
            local=LocalStorage(self._sessionmaker, scope=str(chat_id)),
            rooms=self._rooms,
            shortener=self._shortener,
            base_url=s.app_base_url,
            max_url_length=s.snapshot_max_url_length,
            default_member_count=s.default_member_count,
            sync_debounce_seconds=s.sync_debounce_seconds,
        )

    def _notify(self, chat_id: int) -> None:
        for listener in self._listeners:
            listener(chat_id)
