from __future__ import annotations

import logging
from datetime import date

from aiogram import Bot, F, Router
from aiogram.enums import ParseMode
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import BufferedInputFile, CallbackQuery, Message

from smart_split.bot.callbacks import ConfirmCb
from smart_split.bot.keyboards import confirm_keyboard
from smart_split.bot.states import ImportFlow
from smart_split.bot.text import esc
from smart_split.errors import MalformedImportError
from smart_split.services.backup import backup_filename, export_backup, parse_backup
from smart_split.state.app import AppState

logger = logging.getLogger(__name__)

router = Router(name=__name__)

MAX_BACKUP_BYTES = 1024 * 1024


@router.message(Command("export"))
async def export_cmd(message: Message, app: AppState) -> None:
    payload = export_backup(app.store.members, app.store.bills).encode("utf-8")
    await message.answer_document(
        BufferedInputFile(payload, filename=backup_filename(date.today())),
        caption="Backup of all members and bills. Send this file to any chat with the bot to load it.",
    )


@router.message(F.document)
async def import_document(message: Message, bot: Bot, state: FSMContext) -> None:
    doc = message.document
    if not (doc.file_name or "").lower().endswith(".json") and doc.mime_type != "application/json":
        return
    if doc.file_size and doc.file_size > MAX_BACKUP_BYTES:
        await message.answer("That file is too large to be a backup.")
        return

    buf = await bot.download(doc)
    raw = buf.read()
    try:
        parsed = parse_backup(raw)
    except MalformedImportError as e:
        logger.info("Rejected backup upload in chat %s: %s", message.chat.id, e)
        await message.answer(f"Could not load that file: {esc(str(e))}")
        return

    await state.clear()
    await state.set_state(ImportFlow.confirm)
    await state.update_data(import_payload=raw.decode("utf-8"))
    await message.answer(
        f"Load this backup ({len(parsed.members)} members, {len(parsed.bills)} bills)?\n"
        "<b>The current data will be overwritten.</b>",
        parse_mode=ParseMode.HTML,
        reply_markup=confirm_keyboard(initiator_user_id=message.from_user.id, flow="import"),
    )


@router.callback_query(ImportFlow.confirm, ConfirmCb.filter(F.flow == "import"))
async def import_confirm_cb(callback: CallbackQuery, callback_data: ConfirmCb, state: FSMContext, app: AppState) -> None:
    if callback.from_user.id != callback_data.initiator:
        await callback.answer("This button is not for you.", show_alert=True)
        return
    data = await state.get_data()
    await state.clear()
    try:
        parsed = parse_backup(data.get("import_payload") or "")
    except MalformedImportError as e:
        await callback.message.edit_text(f"Could not load that file: {esc(str(e))}")
        await callback.answer()
        return

    app.apply_import(parsed)
    await callback.message.edit_text("Backup loaded.")
    await callback.answer()
