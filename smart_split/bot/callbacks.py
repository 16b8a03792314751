from __future__ import annotations

from aiogram.filters.callback_data import CallbackData


class CloseCb(CallbackData, prefix="close"):
    initiator: int


class DigitCb(CallbackData, prefix="digit"):
    initiator: int
    digit: int


class NumActionCb(CallbackData, prefix="numact"):
    initiator: int
    field: str  # "amount" | "wizard"
    action: str  # ok | back | clear | dot | cancel


class PickPayerCb(CallbackData, prefix="payer"):
    initiator: int
    index: int  # position in the member list


class PageCb(CallbackData, prefix="page"):
    initiator: int
    flow: str  # payer | participants
    page: int


class ToggleParticipantCb(CallbackData, prefix="tpart"):
    initiator: int
    index: int
    page: int


class ParticipantsActionCb(CallbackData, prefix="pact"):
    initiator: int
    action: str  # done | all


class ConfirmCb(CallbackData, prefix="confirm"):
    initiator: int
    flow: str  # import | reset
