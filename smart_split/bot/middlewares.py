from __future__ import annotations

from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from smart_split.bot.sessions import AppRegistry


class AppStateMiddleware(BaseMiddleware):
    """Injects the chat's :class:`AppState` as ``app``."""

    def __init__(self, registry: AppRegistry) -> None:
        super().__init__()
        self._registry = registry

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        tg_chat = None
        if isinstance(event, Message):
            tg_chat = event.chat
        elif isinstance(event, CallbackQuery) and event.message:
            tg_chat = event.message.chat

        if tg_chat is None:
            return await handler(event, data)

        data["app"] = await self._registry.get(tg_chat.id)
        return await handler(event, data)
