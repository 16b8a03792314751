from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramUnauthorizedError
from aiogram.fsm.storage.memory import MemoryStorage

from smart_split.bot.dashboard import DashboardManager
from smart_split.bot.middlewares import AppStateMiddleware
from smart_split.bot.routers import all_routers
from smart_split.bot.sessions import AppRegistry
from smart_split.config import settings
from smart_split.db.session import create_engine, create_sessionmaker, init_models
from smart_split.logging import configure_logging
from smart_split.services.receipts import ReceiptRecognizer
from smart_split.services.rooms import SqlRoomStore
from smart_split.services.sharing import LinkShortener

logger = logging.getLogger(__name__)


async def main() -> None:
    configure_logging(settings.log_level)

    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is not set.")

    engine = create_engine(settings.database_url, echo=settings.sql_echo)
    await init_models(engine)
    sessionmaker = create_sessionmaker(engine)

    room_engine = None
    rooms = None
    if settings.room_database_url:
        room_engine = create_engine(settings.room_database_url, echo=settings.sql_echo)
        await init_models(room_engine)
        rooms = SqlRoomStore(create_sessionmaker(room_engine), poll_seconds=settings.room_poll_seconds)
    else:
        logger.info("ROOM_DATABASE_URL not set; live rooms are disabled")

    shortener = LinkShortener(
        endpoint=settings.shortener_url,
        max_url_length=settings.shortener_max_url_length,
        timeout=settings.http_timeout_seconds,
    )
    recognizer = ReceiptRecognizer(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout=settings.http_timeout_seconds,
    )
    registry = AppRegistry(sessionmaker=sessionmaker, rooms=rooms, shortener=shortener, settings=settings)

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dashboard = DashboardManager(bot=bot, registry=registry, debounce_seconds=settings.dashboard_debounce_seconds)
    registry.add_change_listener(dashboard.schedule)
    try:
        try:
            me = await bot.get_me()
        except TelegramUnauthorizedError as e:
            logger.error("Telegram Unauthorized. Check BOT_TOKEN in .env (BotFather token). %s", e)
            raise

        dp = Dispatcher(storage=MemoryStorage())
        dp.message.middleware(AppStateMiddleware(registry))
        dp.callback_query.middleware(AppStateMiddleware(registry))

        dp.workflow_data.update(
            {
                "registry": registry,
                "dashboard": dashboard,
                "recognizer": recognizer,
                "bot_username": me.username or "",
            }
        )

        for r in all_routers():
            dp.include_router(r)

        logger.info("Starting bot as @%s", me.username)
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        dashboard.cancel_all()
        await registry.close_all()
        await bot.session.close()
        await engine.dispose()
        if room_engine is not None:
            await room_engine.dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
