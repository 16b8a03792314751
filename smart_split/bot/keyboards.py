from __future__ import annotations

from collections.abc import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from smart_split.bot.callbacks import (
    CloseCb,
    ConfirmCb,
    DigitCb,
    NumActionCb,
    PageCb,
    ParticipantsActionCb,
    PickPayerCb,
    ToggleParticipantCb,
)
from smart_split.bot.text import member_label
from smart_split.services.entities import Member


def _cancel_button(initiator_user_id: int) -> InlineKeyboardButton:
    return InlineKeyboardButton(
        text="Cancel",
        callback_data=NumActionCb(initiator=initiator_user_id, field="wizard", action="cancel").pack(),
    )


def _nav_row(*, initiator_user_id: int, flow: str, page: int, per_page: int, total: int) -> list[InlineKeyboardButton]:
    nav: list[InlineKeyboardButton] = []
    if page > 0:
        nav.append(
            InlineKeyboardButton(text="⬅️", callback_data=PageCb(initiator=initiator_user_id, flow=flow, page=page - 1).pack())
        )
    if (page + 1) * per_page < total:
        nav.append(
            InlineKeyboardButton(text="➡️", callback_data=PageCb(initiator=initiator_user_id, flow=flow, page=page + 1).pack())
        )
    return nav


def close_keyboard(*, initiator_user_id: int, text: str = "Close") -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(
        InlineKeyboardButton(text=text, callback_data=CloseCb(initiator=initiator_user_id).pack()),
        width=1,
    )
    return kb.as_markup()


def numeric_keyboard(*, initiator_user_id: int) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    for row in ([1, 2, 3], [4, 5, 6], [7, 8, 9]):
        kb.row(
            *[
                InlineKeyboardButton(text=str(d), callback_data=DigitCb(initiator=initiator_user_id, digit=d).pack())
                for d in row
            ],
            width=3,
        )
    kb.row(
        InlineKeyboardButton(
            text=".", callback_data=NumActionCb(initiator=initiator_user_id, field="amount", action="dot").pack()
        ),
        InlineKeyboardButton(text="0", callback_data=DigitCb(initiator=initiator_user_id, digit=0).pack()),
        InlineKeyboardButton(
            text="⬅️", callback_data=NumActionCb(initiator=initiator_user_id, field="amount", action="back").pack()
        ),
        InlineKeyboardButton(
            text="C", callback_data=NumActionCb(initiator=initiator_user_id, field="amount", action="clear").pack()
        ),
        width=4,
    )
    kb.row(
        _cancel_button(initiator_user_id),
        InlineKeyboardButton(
            text="OK", callback_data=NumActionCb(initiator=initiator_user_id, field="amount", action="ok").pack()
        ),
        width=2,
    )
    return kb.as_markup()


def payer_keyboard(
    *,
    initiator_user_id: int,
    members: Sequence[Member],
    page: int,
    per_page: int = 8,
) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    start = page * per_page
    for idx, m in enumerate(members[start : start + per_page], start=start):
        kb.row(
            InlineKeyboardButton(
                text=member_label(m),
                callback_data=PickPayerCb(initiator=initiator_user_id, index=idx).pack(),
            )
        )

    nav = _nav_row(initiator_user_id=initiator_user_id, flow="payer", page=page, per_page=per_page, total=len(members))
    if nav:
        kb.row(*nav, width=len(nav))
    kb.row(_cancel_button(initiator_user_id), width=1)
    return kb.as_markup()


def participants_keyboard(
    *,
    initiator_user_id: int,
    members: Sequence[Member],
    selected_ids: set[str],
    page: int,
    per_page: int = 8,
) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    start = page * per_page
    for idx, m in enumerate(members[start : start + per_page], start=start):
        checked = "✅" if m.id in selected_ids else "☑️"
        kb.row(
            InlineKeyboardButton(
                text=f"{checked} {member_label(m)}",
                callback_data=ToggleParticipantCb(initiator=initiator_user_id, index=idx, page=page).pack(),
            )
        )

    nav = _nav_row(
        initiator_user_id=initiator_user_id, flow="participants", page=page, per_page=per_page, total=len(members)
    )
    if nav:
        kb.row(*nav, width=len(nav))

    kb.row(
        InlineKeyboardButton(
            text="Everyone", callback_data=ParticipantsActionCb(initiator=initiator_user_id, action="all").pack()
        ),
        InlineKeyboardButton(
            text="Done", callback_data=ParticipantsActionCb(initiator=initiator_user_id, action="done").pack()
        ),
        width=2,
    )
    kb.row(_cancel_button(initiator_user_id), width=1)
    return kb.as_markup()


def confirm_keyboard(*, initiator_user_id: int, flow: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(
        InlineKeyboardButton(text="Confirm", callback_data=ConfirmCb(initiator=initiator_user_id, flow=flow).pack()),
        _cancel_button(initiator_user_id),
        width=2,
    )
    return kb.as_markup()
