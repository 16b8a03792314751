from __future__ import annotations

from aiogram import Router
from aiogram.enums import ParseMode
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from smart_split.bot.dashboard_render import render_members
from smart_split.bot.text import esc
from smart_split.bot.utils import pick_by_number
from smart_split.errors import SmartSplitError
from smart_split.state.app import AppState

router = Router(name=__name__)


@router.message(Command("members"))
async def members_cmd(message: Message, app: AppState) -> None:
    await message.answer(render_members(app.store.members), parse_mode=ParseMode.HTML)


@router.message(Command("add_member"))
async def add_member_cmd(message: Message, command: CommandObject, app: AppState) -> None:
    name = (command.args or "").strip() or "New member"
    try:
        member = app.store.add_member(name)
    except SmartSplitError as e:
        await message.answer(esc(str(e)))
        return
    await message.answer(f"Added <b>{esc(member.name)}</b> as member {len(app.store.members)}.", parse_mode=ParseMode.HTML)


@router.message(Command("rename"))
async def rename_cmd(message: Message, command: CommandObject, app: AppState) -> None:
    parts = (command.args or "").split(maxsplit=1)
    member = pick_by_number(app.store.members, parts[0]) if parts else None
    if member is None or len(parts) < 2:
        await message.answer("Usage: /rename &lt;member number&gt; &lt;new name&gt;", parse_mode=ParseMode.HTML)
        return
    try:
        renamed = app.store.rename_member(member.id, parts[1])
    except SmartSplitError as e:
        await message.answer(esc(str(e)))
        return
    await message.answer(f"{esc(member.name)} is now <b>{esc(renamed.name)}</b>.", parse_mode=ParseMode.HTML)


@router.message(Command("remove_member"))
async def remove_member_cmd(message: Message, command: CommandObject, app: AppState) -> None:
    member = pick_by_number(app.store.members, (command.args or "").strip())
    if member is None:
        await message.answer("Usage: /remove_member &lt;member number&gt; (see /members)", parse_mode=ParseMode.HTML)
        return
    try:
        app.store.remove_member(member.id)
    except SmartSplitError as e:
        await message.answer(esc(str(e)))
        return
    await message.answer(f"Removed <b>{esc(member.name)}</b> from the group and its bills.", parse_mode=ParseMode.HTML)
