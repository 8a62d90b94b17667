# coding: utf-8
"""
Reminder Service - напоминания о неоплаченных заказах

Settings per reminder type live in reminder_settings; every sent message
is logged to sent_reminders so limits (max per order, min interval) hold
across restarts.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramForbiddenError, TelegramBadRequest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.database import crud
from src.database.models import Order, ReminderSettings, SentReminder
from src.utils.dates import as_utc, utcnow
from config.loyalty_config import (
    UNPAID_ORDER_REMINDER_TYPE,
    DEFAULT_UNPAID_ORDER_TEMPLATE,
    DEFAULT_REMINDER_DELAY_HOURS,
    DEFAULT_MAX_REMINDERS,
    DEFAULT_MIN_INTERVAL_HOURS,
)


class ReminderService:
    """Service for unpaid order reminders"""

    @staticmethod
    async def get_or_create_settings(
        session: AsyncSession, reminder_type: str = UNPAID_ORDER_REMINDER_TYPE
    ) -> ReminderSettings:
        """Settings row for reminder type (created disabled with defaults)"""
        settings = await crud.get_reminder_settings(session, reminder_type)
        if not settings:
            settings = ReminderSettings(
                type=reminder_type,
                enabled=False,
                delay_hours=DEFAULT_REMINDER_DELAY_HOURS,
                message_template=DEFAULT_UNPAID_ORDER_TEMPLATE,
                max_reminders=DEFAULT_MAX_REMINDERS,
                min_interval_hours=DEFAULT_MIN_INTERVAL_HOURS,
            )
            session.add(settings)
            await session.commit()
            await session.refresh(settings)
            logger.info(f"Created reminder settings for {reminder_type}")
        return settings

    @staticmethod
    async def update_settings(
        session: AsyncSession,
        reminder_type: str = UNPAID_ORDER_REMINDER_TYPE,
        **fields,
    ) -> ReminderSettings:
        """
        Update settings fields (enabled, delay_hours, message_template,
        max_reminders, min_interval_hours); None values are ignored
        """
        allowed = {"enabled", "delay_hours", "message_template", "max_reminders", "min_interval_hours"}
        settings = await ReminderService.get_or_create_settings(session, reminder_type)
        for key, value in fields.items():
            if key not in allowed:
                raise ValueError(f"Unknown reminder setting: {key}")
            if value is not None:
                setattr(settings, key, value)
        await session.commit()
        logger.info(f"Reminder settings {reminder_type} updated: {fields}")
        return settings

    @staticmethod
    async def find_due_orders(
        session: AsyncSession,
        settings: ReminderSettings,
        now: Optional[datetime] = None,
    ) -> List[Order]:
        """
        Pending orders older than delay_hours that still may be reminded

        Skips orders that already got max_reminders or were reminded
        less than min_interval_hours ago.
        """
        if not settings.enabled:
            return []

        now = now or utcnow()
        cutoff = now - timedelta(hours=settings.delay_hours)
        interval = timedelta(hours=settings.min_interval_hours)

        due = []
        for order in await crud.get_pending_orders_older_than(session, cutoff):
            if not order.user or not order.user.telegram_id:
                continue
            sent = await crud.get_sent_reminders_for_order(session, order.id, settings.type)
            if len(sent) >= settings.max_reminders:
                continue
            if sent and as_utc(sent[0].sent_at) > now - interval:
                continue
            due.append(order)
        return due

    @staticmethod
    def format_message(settings: ReminderSettings, order: Order) -> str:
        """Render template; broken admin template falls back to default"""
        fields = {
            "name": order.customer_name or (order.user.first_name if order.user else "") or "",
            "order_number": order.order_number,
            "total": order.total_price,
        }
        try:
            return settings.message_template.format(**fields)
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(f"Invalid reminder template for {settings.type}: {e}")
            return DEFAULT_UNPAID_ORDER_TEMPLATE.format(**fields)

    @staticmethod
    async def record_sent(session: AsyncSession, settings: ReminderSettings, order: Order) -> SentReminder:
        reminder = SentReminder(user_id=order.user_id, type=settings.type, order_id=order.id)
        session.add(reminder)
        await session.execute(
            update(ReminderSettings)
            .where(ReminderSettings.id == settings.id)
            .values(sent_count=ReminderSettings.sent_count + 1)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return reminder

    @staticmethod
    async def send_unpaid_order_reminders(session: AsyncSession, bot: Bot) -> int:
        """
        Send reminders for all due unpaid orders

        Returns:
            Number of reminders sent
        """
        settings = await ReminderService.get_or_create_settings(session, UNPAID_ORDER_REMINDER_TYPE)
        orders = await ReminderService.find_due_orders(session, settings)
        if not orders:
            return 0

        sent = 0
        for order in orders:
            text = ReminderService.format_message(settings, order)
            try:
                await bot.send_message(order.user.telegram_id, text, parse_mode="HTML")
            except TelegramForbiddenError:
                logger.debug(f"User {order.user.telegram_id} blocked the bot, reminder skipped")
                continue
            except TelegramBadRequest as e:
                logger.warning(f"Reminder for order {order.order_number} failed: {e}")
                continue

            await ReminderService.record_sent(session, settings, order)
            sent += 1

        logger.info(f"Sent {sent} unpaid order reminders")
        return sent

    @staticmethod
    async def mark_converted(session: AsyncSession, order_id: str) -> int:
        """Mark reminders for a now-paid order as converted"""
        result = await session.execute(
            update(SentReminder)
            .where(SentReminder.order_id == order_id, SentReminder.converted.is_(False))
            .values(converted=True, converted_at=utcnow())
            .returning(SentReminder.type)
            .execution_options(synchronize_session=False)
        )
        types = set(result.scalars().all())
        if not types:
            return 0

        for reminder_type in types:
            await session.execute(
                update(ReminderSettings)
                .where(ReminderSettings.type == reminder_type)
                .values(converted_count=ReminderSettings.converted_count + 1)
                .execution_options(synchronize_session=False)
            )
        await session.commit()
        logger.info(f"Order {order_id} converted after reminder")
        return len(types)
