from __future__ import annotations

from aiogram import Router
from aiogram.enums import ParseMode
from aiogram.filters import Command
from aiogram.types import Message

from smart_split.bot.text import esc
from smart_split.state.app import AppState
from smart_split.state.sync import SyncStatus

router = Router(name=__name__)

SETUP_PROMPT = (
    "Live rooms are not set up yet. Ask the bot operator to set <code>ROOM_DATABASE_URL</code> "
    "to a database shared by everyone in the room. Until then use /share or /export."
)


def _room_links(app: AppState, room_id: str, bot_username: str) -> str:
    lines = [f"Room <code>{esc(room_id)}</code>"]
    url = app.room_url()
    if url:
        lines.append(esc(url))
    if bot_username:
        lines.append(f"https://t.me/{esc(bot_username)}?start=room_{esc(room_id)}")
    return "\n".join(lines)


@router.message(Command("room"))
async def room_cmd(message: Message, app: AppState, bot_username: str) -> None:
    if app.sync.active:
        if app.status is SyncStatus.ERROR:
            await app.sync.reconnect()
            await message.answer(f"Reconnecting to room <code>{esc(app.sync.room_id)}</code>…", parse_mode=ParseMode.HTML)
            return
        await message.answer(_room_links(app, app.sync.room_id, bot_username), parse_mode=ParseMode.HTML)
        return

    room_id = await app.sync.start_session()
    if room_id is None:
        await message.answer(SETUP_PROMPT, parse_mode=ParseMode.HTML)
        return
    if app.status is SyncStatus.ERROR:
        await app.sync.disconnect()
        await message.answer("Could not create the room right now. Try /room again later.")
        return
    await message.answer(
        "Live room created. Everyone who opens one of these links edits the same bills:\n"
        + _room_links(app, room_id, bot_username),
        parse_mode=ParseMode.HTML,
        disable_web_page_preview=True,
    )


@router.message(Command("leave"))
async def leave_cmd(message: Message, app: AppState) -> None:
    if not app.sync.active:
        await message.answer("This chat is not in a live room.")
        return
    await app.sync.disconnect()
    await message.answer("Left the room. Changes are saved in this chat again.")
