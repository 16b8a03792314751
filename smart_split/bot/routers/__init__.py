from __future__ import annotations

from aiogram import Router

from smart_split.bot.routers.backup import router as backup_router
from smart_split.bot.routers.bills import router as bills_router
from smart_split.bot.routers.common_callbacks import router as common_callbacks_router
from smart_split.bot.routers.members import router as members_router
from smart_split.bot.routers.receipts import router as receipts_router
from smart_split.bot.routers.room import router as room_router
from smart_split.bot.routers.session import router as session_router
from smart_split.bot.routers.settle import router as settle_router


def all_routers() -> list[Router]:
    return [
        common_callbacks_router,
        session_router,
        members_router,
        bills_router,
        settle_router,
        room_router,
        backup_router,
        receipts_router,
    ]
