from __future__ import annotations

from typing import Optional

from aiogram import F, Router
from aiogram.enums import ParseMode
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from smart_split.bot.callbacks import DigitCb, NumActionCb, PageCb, ParticipantsActionCb, PickPayerCb, ToggleParticipantCb
from smart_split.bot.dashboard_render import render_bills
from smart_split.bot.keyboards import numeric_keyboard, participants_keyboard, payer_keyboard
from smart_split.bot.states import BillFlow
from smart_split.bot.text import esc, format_amount, member_label, parse_amount
from smart_split.bot.utils import pick_by_number, safe_delete_message
from smart_split.errors import SmartSplitError
from smart_split.state.app import AppState

router = Router(name=__name__)

MAX_AMOUNT_DIGITS = 10


def _amount_text(title: str, amount_s: str) -> str:
    return (
        f"<b>New bill:</b> {esc(title)}\n"
        f"Amount: <b>{esc(amount_s or '0')}</b>\n\n"
        "Enter the amount with the buttons."
    )


def _heading(editing: bool) -> str:
    return "Editing bill:" if editing else "New bill:"


def _payer_text(title: str, amount: float, *, editing: bool = False) -> str:
    return f"<b>{_heading(editing)}</b> {esc(title)}\nAmount: <b>{format_amount(amount)}</b>\n\nWho paid?"


def _participants_text(title: str, amount: float, payer_name: str, count: int, *, editing: bool = False) -> str:
    return (
        f"<b>{_heading(editing)}</b> {esc(title)}\n"
        f"Amount: <b>{format_amount(amount)}</b>, paid by <b>{esc(payer_name)}</b>\n\n"
        f"Split between ({count} selected):"
    )


async def start_payer_step(
    message: Message,
    state: FSMContext,
    app: AppState,
    *,
    initiator: int,
    title: str,
    amount: float,
    bill_id: Optional[str] = None,
    participant_ids: Optional[list[str]] = None,
) -> None:
    """Begin the wizard at the payer step with title and amount already known.

    With ``bill_id`` the wizard edits that bill instead of adding a new one,
    starting from its current participants.
    """
    await state.clear()
    await state.set_state(BillFlow.payer)
    await state.update_data(
        initiator_user_id=initiator,
        title=title,
        amount=amount,
        edit_bill_id=bill_id,
        preset_participant_ids=participant_ids,
    )
    await message.answer(
        _payer_text(title, amount, editing=bill_id is not None),
        parse_mode=ParseMode.HTML,
        reply_markup=payer_keyboard(initiator_user_id=initiator, members=app.store.members, page=0),
    )


async def _guard(callback: CallbackQuery, initiator: int) -> bool:
    if callback.from_user.id != initiator:
        await callback.answer("This button is not for you.", show_alert=True)
        return False
    return True


@router.message(Command("bill"))
async def bill_cmd(message: Message, command: CommandObject, state: FSMContext) -> None:
    title = (command.args or "").strip()
    if not title:
        await message.answer("Usage: /bill &lt;title&gt;, e.g. /bill Dinner", parse_mode=ParseMode.HTML)
        return
    await state.clear()
    await state.set_state(BillFlow.amount)
    await state.update_data(initiator_user_id=message.from_user.id, title=title, amount_str="")
    await message.answer(
        _amount_text(title, ""),
        parse_mode=ParseMode.HTML,
        reply_markup=numeric_keyboard(initiator_user_id=message.from_user.id),
    )


@router.callback_query(BillFlow.amount, DigitCb.filter())
async def bill_digit_cb(callback: CallbackQuery, callback_data: DigitCb, state: FSMContext) -> None:
    if not await _guard(callback, callback_data.initiator):
        return
    data = await state.get_data()
    s = str(data.get("amount_str") or "")
    if len(s) >= MAX_AMOUNT_DIGITS or ("." in s and len(s.split(".")[1]) >= 2):
        await callback.answer()
        return
    s = (s + str(callback_data.digit)).lstrip("0") if "." not in s else s + str(callback_data.digit)
    await state.update_data(amount_str=s)
    await callback.message.edit_text(
        _amount_text(data["title"], s),
        parse_mode=ParseMode.HTML,
        reply_markup=numeric_keyboard(initiator_user_id=callback_data.initiator),
    )
    await callback.answer()


@router.callback_query(BillFlow.amount, NumActionCb.filter(F.field == "amount"))
async def bill_num_action_cb(callback: CallbackQuery, callback_data: NumActionCb, state: FSMContext, app: AppState) -> None:
    if not await _guard(callback, callback_data.initiator):
        return
    data = await state.get_data()
    s = str(data.get("amount_str") or "")

    if callback_data.action == "back":
        s = s[:-1]
    elif callback_data.action == "clear":
        s = ""
    elif callback_data.action == "dot":
        if "." not in s:
            s = (s or "0") + "."
    elif callback_data.action == "ok":
        amount = parse_amount(s) if s else None
        if amount is None:
            await callback.answer("Enter an amount greater than zero.", show_alert=True)
            return
        await state.set_state(BillFlow.payer)
        await state.update_data(amount=amount)
        await callback.message.edit_text(
            _payer_text(data["title"], amount),
            parse_mode=ParseMode.HTML,
            reply_markup=payer_keyboard(initiator_user_id=callback_data.initiator, members=app.store.members, page=0),
        )
        await callback.answer()
        return
    else:
        await callback.answer()
        return

    await state.update_data(amount_str=s)
    await callback.message.edit_text(
        _amount_text(data["title"], s),
        parse_mode=ParseMode.HTML,
        reply_markup=numeric_keyboard(initiator_user_id=callback_data.initiator),
    )
    await callback.answer()


@router.callback_query(BillFlow.payer, PageCb.filter(F.flow == "payer"))
async def payer_page_cb(callback: CallbackQuery, callback_data: PageCb, app: AppState) -> None:
    if not await _guard(callback, callback_data.initiator):
        return
    await callback.message.edit_reply_markup(
        reply_markup=payer_keyboard(
            initiator_user_id=callback_data.initiator, members=app.store.members, page=callback_data.page
        )
    )
    await callback.answer()


@router.callback_query(BillFlow.payer, PickPayerCb.filter())
async def payer_pick_cb(callback: CallbackQuery, callback_data: PickPayerCb, state: FSMContext, app: AppState) -> None:
    if not await _guard(callback, callback_data.initiator):
        return
    members = app.store.members
    if not 0 <= callback_data.index < len(members):
        await callback.answer("The member list changed, please pick again.", show_alert=True)
        return
    payer = members[callback_data.index]

    data = await state.get_data()
    preset = set(data.get("preset_participant_ids") or [])
    selected = [m.id for m in members if m.id in preset] or [m.id for m in members]
    await state.set_state(BillFlow.participants)
    await state.update_data(payer_id=payer.id, participant_ids=selected)
    await callback.message.edit_text(
        _participants_text(
            data["title"], data["amount"], payer.name, len(selected), editing=bool(data.get("edit_bill_id"))
        ),
        parse_mode=ParseMode.HTML,
        reply_markup=participants_keyboard(
            initiator_user_id=callback_data.initiator, members=members, selected_ids=set(selected), page=0
        ),
    )
    await callback.answer()


async def _redraw_participants(callback: CallbackQuery, state: FSMContext, app: AppState, *, initiator: int, page: int) -> None:
    data = await state.get_data()
    selected = list(data.get("participant_ids") or [])
    payer = app.store.member(data["payer_id"])
    await callback.message.edit_text(
        _participants_text(
            data["title"], data["amount"], member_label(payer), len(selected), editing=bool(data.get("edit_bill_id"))
        ),
        parse_mode=ParseMode.HTML,
        reply_markup=participants_keyboard(
            initiator_user_id=initiator, members=app.store.members, selected_ids=set(selected), page=page
        ),
    )


@router.callback_query(BillFlow.participants, PageCb.filter(F.flow == "participants"))
async def participants_page_cb(callback: CallbackQuery, callback_data: PageCb, state: FSMContext, app: AppState) -> None:
    if not await _guard(callback, callback_data.initiator):
        return
    await _redraw_participants(callback, state, app, initiator=callback_data.initiator, page=callback_data.page)
    await callback.answer()


@router.callback_query(BillFlow.participants, ToggleParticipantCb.filter())
async def participant_toggle_cb(
    callback: CallbackQuery, callback_data: ToggleParticipantCb, state: FSMContext, app: AppState
) -> None:
    if not await _guard(callback, callback_data.initiator):
        return
    members = app.store.members
    if not 0 <= callback_data.index < len(members):
        await callback.answer("The member list changed.", show_alert=True)
        return
    mid = members[callback_data.index].id

    data = await state.get_data()
    selected = list(data.get("participant_ids") or [])
    if mid in selected:
        if len(selected) == 1:
            await callback.answer("A bill needs at least one participant.", show_alert=True)
            return
        selected.remove(mid)
    else:
        selected.append(mid)
    await state.update_data(participant_ids=selected)
    await _redraw_participants(callback, state, app, initiator=callback_data.initiator, page=callback_data.page)
    await callback.answer()


@router.callback_query(BillFlow.participants, ParticipantsActionCb.filter())
async def participants_action_cb(
    callback: CallbackQuery, callback_data: ParticipantsActionCb, state: FSMContext, app: AppState
) -> None:
    if not await _guard(callback, callback_data.initiator):
        return

    if callback_data.action == "all":
        await state.update_data(participant_ids=[m.id for m in app.store.members])
        await _redraw_participants(callback, state, app, initiator=callback_data.initiator, page=0)
        await callback.answer()
        return
    if callback_data.action != "done":
        await callback.answer()
        return

    data = await state.get_data()
    # Keep display order, not click order.
    chosen = set(data.get("participant_ids") or [])
    involved = [m.id for m in app.store.members if m.id in chosen]
    edit_bill_id = data.get("edit_bill_id")
    try:
        if edit_bill_id:
            bill = app.store.update_bill(edit_bill_id, payer_id=data["payer_id"], involved_ids=involved)
        else:
            bill = app.store.add_bill(
                title=data["title"],
                amount=data["amount"],
                payer_id=data["payer_id"],
                involved_ids=involved,
            )
    except SmartSplitError as e:
        await callback.answer(str(e), show_alert=True)
        return

    await state.clear()
    await safe_delete_message(callback.bot, chat_id=callback.message.chat.id, message_id=callback.message.message_id)
    payer = app.store.member(bill.payer_id)
    await callback.message.answer(
        f"{'Updated' if edit_bill_id else 'Added'} <b>{esc(bill.title)}</b>: "
        f"{format_amount(bill.amount)} paid by {esc(member_label(payer))}, "
        f"split {len(bill.involved_ids)} ways.",
        parse_mode=ParseMode.HTML,
    )
    await callback.answer("Saved.")


@router.message(Command("bills"))
async def bills_cmd(message: Message, app: AppState) -> None:
    await message.answer(render_bills(app.store.bills, app.store.members), parse_mode=ParseMode.HTML)


@router.message(Command("edit_bill"))
async def edit_bill_cmd(message: Message, command: CommandObject, state: FSMContext, app: AppState) -> None:
    parts = (command.args or "").split(maxsplit=2)
    bill = pick_by_number(app.store.bills, parts[0]) if parts else None
    if bill is not None and len(parts) == 1:
        # Number only: pick payer and participants again.
        await start_payer_step(
            message,
            state,
            app,
            initiator=message.from_user.id,
            title=bill.title,
            amount=bill.amount,
            bill_id=bill.id,
            participant_ids=list(bill.involved_ids),
        )
        return
    amount = parse_amount(parts[1]) if len(parts) > 1 else None
    if bill is None or amount is None:
        await message.answer(
            "Usage: /edit_bill &lt;bill number&gt; to change payer and participants, "
            "or /edit_bill &lt;bill number&gt; &lt;amount&gt; [new title]",
            parse_mode=ParseMode.HTML,
        )
        return
    try:
        updated = app.store.update_bill(bill.id, amount=amount, title=parts[2] if len(parts) > 2 else None)
    except SmartSplitError as e:
        await message.answer(esc(str(e)))
        return
    await message.answer(f"Updated <b>{esc(updated.title)}</b>: {format_amount(updated.amount)}.", parse_mode=ParseMode.HTML)


@router.message(Command("delete_bill"))
async def delete_bill_cmd(message: Message, command: CommandObject, app: AppState) -> None:
    bill = pick_by_number(app.store.bills, (command.args or "").strip())
    if bill is None:
        await message.answer("Usage: /delete_bill &lt;bill number&gt; (see /bills)", parse_mode=ParseMode.HTML)
        return
    try:
        app.store.delete_bill(bill.id)
    except SmartSplitError as e:
        await message.answer(esc(str(e)))
        return
    await message.answer(f"Deleted <b>{esc(bill.title)}</b>.", parse_mode=ParseMode.HTML)
