from __future__ import annotations

from aiogram import Router
from aiogram.enums import ParseMode
from aiogram.filters import Command
from aiogram.types import Message

from smart_split.bot.dashboard_render import render_settlement
from smart_split.bot.keyboards import close_keyboard
from smart_split.bot.text import esc
from smart_split.errors import SnapshotTooLargeError
from smart_split.services.ledger import summarize
from smart_split.state.app import AppState

router = Router(name=__name__)


@router.message(Command("settle"))
async def settle_cmd(message: Message, app: AppState) -> None:
    members = app.store.members
    summary = summarize(members, app.store.bills)
    await message.answer(
        render_settlement(summary, members),
        parse_mode=ParseMode.HTML,
        reply_markup=close_keyboard(initiator_user_id=message.from_user.id),
    )


@router.message(Command("share"))
async def share_cmd(message: Message, app: AppState) -> None:
    try:
        link = await app.share_link()
    except SnapshotTooLargeError as e:
        await message.answer(esc(str(e)))
        return
    text = f"Open this link to get a copy of the bills:\n{esc(link.url)}"
    if not link.shortened:
        text += "\n<i>(the link shortener was unavailable, so this is the full link)</i>"
    await message.answer(text, parse_mode=ParseMode.HTML, disable_web_page_preview=True)
