from __future__ import annotations

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError


async def safe_delete_message(bot: Bot, *, chat_id: int, message_id: int) -> bool:
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
        return True
    except (TelegramBadRequest, TelegramForbiddenError):
        return False


def pick_by_number(items, raw: str):
    """1-based lookup as shown in listings; None when out of range or not a number."""
    try:
        n = int(raw)
    except ValueError:
        return None
    if 1 <= n <= len(items):
        return items[n - 1]
    return None
