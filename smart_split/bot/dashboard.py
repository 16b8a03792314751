from __future__ import annotations

import logging

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest

from smart_split.bot.dashboard_render import render_dashboard
from smart_split.bot.sessions import AppRegistry
from smart_split.services.ledger import summarize
from smart_split.state.debounce import CoalescingTask

logger = logging.getLogger(__name__)


class DashboardManager:
    """Pinned per-chat summary, refreshed after changes settle down.

    Only chats that asked for a dashboard (/dashboard) get one.
    """

    def __init__(self, *, bot: Bot, registry: AppRegistry, debounce_seconds: float) -> None:
        self._bot = bot
        self._registry = registry
        self._debounce = debounce_seconds
        self._message_ids: dict[int, int] = {}
        self._refreshers: dict[int, CoalescingTask] = {}

    def schedule(self, tg_chat_id: int) -> None:
        if tg_chat_id not in self._message_ids:
            return
        refresher = self._refreshers.get(tg_chat_id)
        if refresher is None:
            refresher = CoalescingTask(
                lambda: self._update(tg_chat_id),
                delay=self._debounce,
                name=f"dashboard:{tg_chat_id}",
            )
            self._refreshers[tg_chat_id] = refresher
        refresher.schedule()

    async def update_now(self, tg_chat_id: int) -> None:
        refresher = self._refreshers.get(tg_chat_id)
        if refresher is not None:
            refresher.cancel()
        await self._update(tg_chat_id)

    def cancel_all(self) -> None:
        for refresher in self._refreshers.values():
            refresher.cancel()

    async def _send_pinned(self, tg_chat_id: int, text: str) -> None:
        old_id = self._message_ids.get(tg_chat_id)
        msg = await self._bot.send_message(
            chat_id=tg_chat_id,
            text=text,
            parse_mode=ParseMode.HTML,
            disable_web_page_preview=True,
        )
        self._message_ids[tg_chat_id] = msg.message_id
        try:
            if old_id and old_id != msg.message_id:
                await self._bot.unpin_chat_message(chat_id=tg_chat_id, message_id=old_id)
            await self._bot.pin_chat_message(chat_id=tg_chat_id, message_id=msg.message_id, disable_notification=True)
        except TelegramAPIError as e:
            # Pinning needs admin rights in groups; the dashboard still works unpinned.
            logger.debug("Could not pin dashboard in chat %s: %s", tg_chat_id, e)

    async def _update(self, tg_chat_id: int) -> None:
        app = self._registry.peek(tg_chat_id)
        if app is None:
            return

        members = app.store.members
        text = render_dashboard(
            members=members,
            summary=summarize(members, app.store.bills),
            status=app.status,
            room_id=app.sync.room_id,
        )

        message_id = self._message_ids.get(tg_chat_id)
        if message_id is None:
            await self._send_pinned(tg_chat_id, text)
            return

        try:
            await self._bot.edit_message_text(
                chat_id=tg_chat_id,
                message_id=message_id,
                text=text,
                parse_mode=ParseMode.HTML,
                disable_web_page_preview=True,
            )
        except TelegramBadRequest as e:
            if "message is not modified" in str(e).lower():
                return
            # Message deleted or not editable: recreate.
            await self._send_pinned(tg_chat_id, text)
