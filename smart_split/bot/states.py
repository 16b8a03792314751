from __future__ import annotations

from aiogram.fsm.state import State, StatesGroup


class BillFlow(StatesGroup):
    amount = State()
    payer = State()
    participants = State()


class ImportFlow(StatesGroup):
    confirm = State()
