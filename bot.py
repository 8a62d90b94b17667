"""
KAVARA - Main Bot Entry Point
"""

import asyncio
import sys

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import BotCommand
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from config.config import BOT_TOKEN, validate_config
from config.logging import setup_logging
from config.sentry import init_sentry
from src.database.engine import dispose_engine
from src.bot.handlers import start, loyalty, loyalty_admin
from src.bot.middleware.database import DatabaseMiddleware
from src.bot.middleware.logging import LoggingMiddleware
from src.tasks.reminder_scheduler import schedule_reminder_tasks

# Background scheduler reference
_scheduler = None


async def setup_bot_commands(bot: Bot) -> None:
    """Setup bot commands menu"""
    commands = [
        BotCommand(command="start", description="🛍 Открыть магазин"),
        BotCommand(command="points", description="💎 Мои баллы"),
        BotCommand(command="referral", description="🎁 Пригласить друга"),
    ]

    await bot.set_my_commands(commands)
    logger.info("Bot commands menu initialized successfully")


async def on_startup(bot: Bot, **kwargs) -> None:
    """Actions to perform on bot startup"""
    global _scheduler

    logger.info("Starting KAVARA Bot...")

    # NOTE: Database tables managed by Alembic migrations
    # Run: alembic upgrade head

    await setup_bot_commands(bot)

    # Unpaid order reminders
    _scheduler = AsyncIOScheduler()
    schedule_reminder_tasks(_scheduler, bot)
    _scheduler.start()
    logger.info("Reminder scheduler started")

    bot_info = await bot.get_me()
    logger.info(f"Bot started: @{bot_info.username} (ID: {bot_info.id})")


async def on_shutdown(bot: Bot, **kwargs) -> None:
    """Actions to perform on bot shutdown"""
    logger.info("Shutting down KAVARA Bot...")

    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("Reminder scheduler stopped")

    await dispose_engine()
    logger.info("Database connections closed")

    await bot.session.close()
    logger.info("Bot session closed")


async def main() -> None:
    """Main bot function"""
    setup_logging()
    init_sentry()

    try:
        validate_config()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info("Configuration validated successfully")

    bot = Bot(
        token=BOT_TOKEN,
        default=DefaultBotProperties(
            parse_mode=ParseMode.HTML, link_preview_is_disabled=True
        ),
    )

    dp = Dispatcher(storage=MemoryStorage())

    # Register middleware (order matters!)
    # 1. Logging middleware (first to log everything)
    dp.message.middleware(LoggingMiddleware())
    dp.callback_query.middleware(LoggingMiddleware())

    # 2. Database middleware (provides session and user to handlers)
    dp.message.middleware(DatabaseMiddleware())
    dp.callback_query.middleware(DatabaseMiddleware())

    dp.include_router(start.router)
    dp.include_router(loyalty_admin.router)
    dp.include_router(loyalty.router)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    try:
        logger.info("Starting bot polling...")
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Bot stopped")
