from __future__ import annotations

from aiogram import F, Router
from aiogram.enums import ParseMode
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message

from smart_split.bot.callbacks import ConfirmCb
from smart_split.bot.dashboard import DashboardManager
from smart_split.bot.dashboard_render import STATUS_LABELS
from smart_split.bot.keyboards import confirm_keyboard
from smart_split.bot.sessions import AppRegistry
from smart_split.bot.text import esc
from smart_split.bot.utils import safe_delete_message
from smart_split.services.sharing import LaunchParams, parse_launch_url
from smart_split.state.app import AppState, InitResult, InitSource

router = Router(name=__name__)

ROOM_PAYLOAD_PREFIX = "room_"

HELP = (
    "<b>Smart Split</b> splits shared bills and works out who pays whom.\n\n"
    "<b>Members</b>: /members, /add_member &lt;name&gt;, /rename &lt;n&gt; &lt;name&gt;, /remove_member &lt;n&gt;\n"
    "<b>Bills</b>: /bill &lt;title&gt;, /bills, /edit_bill &lt;n&gt; [amount] [title], /delete_bill &lt;n&gt;\n"
    "Send a receipt photo to fill in a bill automatically.\n"
    "<b>Settle</b>: /settle, /dashboard\n"
    "<b>Share</b>: /share (link), /export (file), send a .json backup to import, /open &lt;link&gt;\n"
    "<b>Live</b>: /room, /leave, /status\n"
    "/reset clears everything."
)


def describe_init(result: InitResult, app: AppState) -> str:
    lines: list[str] = []
    if result.room_unavailable:
        lines.append("Live rooms are not configured on this bot, so the room link was ignored.")
    if result.room_missing:
        lines.append("That room does not exist, so the room link was ignored.")
    if result.source is InitSource.ROOM:
        lines.append(f"Joining room <code>{esc(app.sync.room_id or '')}</code>… its bills will appear shortly.")
    elif result.source is InitSource.SNAPSHOT:
        lines.append(f"Loaded the shared data: {len(app.store.members)} members, {len(app.store.bills)} bills.")
    else:
        if result.snapshot_rejected:
            lines.append("That link does not contain valid bill data.")
        if result.source is InitSource.LOCAL:
            lines.append("Continuing with this chat's saved data.")
        else:
            lines.append(f"Started with {len(app.store.members)} default members. Rename them with /rename.")
    return "\n".join(lines)


@router.message(CommandStart())
async def start_cmd(message: Message, command: CommandObject, registry: AppRegistry) -> None:
    payload = (command.args or "").strip()
    if payload.startswith(ROOM_PAYLOAD_PREFIX):
        app, result = await registry.open(message.chat.id, LaunchParams(room_id=payload[len(ROOM_PAYLOAD_PREFIX) :]))
        await message.answer(describe_init(result, app), parse_mode=ParseMode.HTML)
        return
    await message.answer(HELP, parse_mode=ParseMode.HTML)


@router.message(Command("help"))
async def help_cmd(message: Message) -> None:
    await message.answer(HELP, parse_mode=ParseMode.HTML)


@router.message(Command("open"))
async def open_cmd(message: Message, command: CommandObject, registry: AppRegistry) -> None:
    arg = (command.args or "").strip()
    if not arg:
        await message.answer("Usage: /open &lt;share link or room link&gt;", parse_mode=ParseMode.HTML)
        return
    launch = parse_launch_url(arg)
    if launch.room_id is None and launch.snapshot_token is None:
        # A bare token pasted without the surrounding link.
        launch = LaunchParams(snapshot_token=arg)
    app, result = await registry.open(message.chat.id, launch)
    if result.source is InitSource.SNAPSHOT:
        # The token has been consumed; keep the chat free of stale copies.
        await safe_delete_message(message.bot, chat_id=message.chat.id, message_id=message.message_id)
    await message.answer(describe_init(result, app), parse_mode=ParseMode.HTML)


@router.message(Command("status"))
async def status_cmd(message: Message, app: AppState) -> None:
    text = f"Sync: <b>{STATUS_LABELS[app.status]}</b>"
    if app.sync.room_id:
        text += f"\nRoom: <code>{esc(app.sync.room_id)}</code>"
    if app.sync.last_error is not None:
        text += f"\nLast error: {esc(str(app.sync.last_error))}\nUse /room to retry."
    await message.answer(text, parse_mode=ParseMode.HTML)


@router.message(Command("dashboard"))
async def dashboard_cmd(message: Message, dashboard: DashboardManager) -> None:
    await dashboard.update_now(message.chat.id)


@router.message(Command("reset"))
async def reset_cmd(message: Message) -> None:
    await message.answer(
        "Clear all members and bills and start over?",
        reply_markup=confirm_keyboard(initiator_user_id=message.from_user.id, flow="reset"),
    )


@router.callback_query(ConfirmCb.filter(F.flow == "reset"))
async def reset_confirm_cb(callback: CallbackQuery, callback_data: ConfirmCb, app: AppState) -> None:
    if callback.from_user.id != callback_data.initiator:
        await callback.answer("This button is not for you.", show_alert=True)
        return
    await app.reset()
    await callback.message.edit_text("All data was reset.")
    await callback.answer()
