# coding: utf-8
"""
Reminder Scheduler - напоминания о неоплаченных заказах

Периодически проверяет pending-заказы и отправляет напоминания в Telegram
"""

from aiogram import Bot
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from src.database.engine import get_session_maker
from src.services.reminder_service import ReminderService
from config.config import REMINDER_CHECK_INTERVAL_MINUTES


async def check_unpaid_orders(bot: Bot) -> None:
    """
    Найти неоплаченные заказы и отправить напоминания

    Вызывается планировщиком каждые N минут
    """
    logger.debug("Checking unpaid orders...")

    async with get_session_maker()() as session:
        try:
            sent = await ReminderService.send_unpaid_order_reminders(session, bot)
            if sent:
                logger.info(f"Unpaid order reminders sent: {sent}")
        except Exception as e:
            logger.exception(f"Error sending unpaid order reminders: {e}")


def schedule_reminder_tasks(scheduler: AsyncIOScheduler, bot: Bot) -> None:
    """
    Настроить планировщик для напоминаний

    Args:
        scheduler: APScheduler instance
        bot: Bot instance
    """
    scheduler.add_job(
        check_unpaid_orders,
        "interval",
        minutes=REMINDER_CHECK_INTERVAL_MINUTES,
        args=[bot],
        id="unpaid_order_reminders",
        replace_existing=True,
        max_instances=1,  # Не запускать параллельно
    )

    logger.info(f"Reminder scheduler configured: checking every {REMINDER_CHECK_INTERVAL_MINUTES} minutes")
