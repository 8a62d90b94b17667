"""
Tests for unpaid order reminders
"""

import pytest
from datetime import datetime, UTC, timedelta
from unittest.mock import AsyncMock, MagicMock

from aiogram.exceptions import TelegramForbiddenError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.core.enums import OrderStatus
from src.database import crud
from src.database.models import Order
from src.services.reminder_service import ReminderService
from src.tasks.reminder_scheduler import schedule_reminder_tasks
from config.loyalty_config import DEFAULT_UNPAID_ORDER_TEMPLATE, UNPAID_ORDER_REMINDER_TYPE


async def make_old_order(session, user, hours_ago=3, status=OrderStatus.PENDING.value):
    order = Order(
        order_number=crud.generate_order_number(),
        user_id=user.id,
        customer_name="Anna",
        customer_phone="+79990000000",
        delivery_method="courier",
        payment_method="card",
        subtotal=1000,
        total_price=1000,
        status=status,
        created_at=datetime.now(UTC) - timedelta(hours=hours_ago),
    )
    session.add(order)
    await session.commit()
    return order


def make_bot():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    return bot


@pytest.mark.asyncio
async def test_settings_created_disabled(db_session):
    settings = await ReminderService.get_or_create_settings(db_session)

    assert settings.type == UNPAID_ORDER_REMINDER_TYPE
    assert settings.enabled is False
    assert settings.message_template == DEFAULT_UNPAID_ORDER_TEMPLATE


@pytest.mark.asyncio
async def test_update_settings(db_session):
    settings = await ReminderService.update_settings(db_session, enabled=True, delay_hours=1, max_reminders=None)

    assert settings.enabled is True
    assert settings.delay_hours == 1
    assert settings.max_reminders == 3

    with pytest.raises(ValueError):
        await ReminderService.update_settings(db_session, bogus=1)


@pytest.mark.asyncio
async def test_disabled_reminders_send_nothing(db_session, user):
    await make_old_order(db_session, user)
    bot = make_bot()

    assert await ReminderService.send_unpaid_order_reminders(db_session, bot) == 0
    bot.send_message.assert_not_called()


@pytest.mark.asyncio
async def test_send_unpaid_order_reminders(db_session, user):
    await ReminderService.update_settings(db_session, enabled=True, delay_hours=2)
    order = await make_old_order(db_session, user, hours_ago=3)
    await make_old_order(db_session, user, hours_ago=1)
    await make_old_order(db_session, user, hours_ago=5, status=OrderStatus.PAID.value)
    bot = make_bot()

    sent = await ReminderService.send_unpaid_order_reminders(db_session, bot)

    assert sent == 1
    chat_id, text = bot.send_message.call_args.args
    assert chat_id == user.telegram_id
    assert order.order_number in text

    # Min interval holds the next run back
    assert await ReminderService.send_unpaid_order_reminders(db_session, bot) == 0
    assert len(await crud.get_sent_reminders_for_order(db_session, order.id, UNPAID_ORDER_REMINDER_TYPE)) == 1


@pytest.mark.asyncio
async def test_max_reminders_per_order(db_session, user):
    settings = await ReminderService.update_settings(
        db_session, enabled=True, max_reminders=1, min_interval_hours=0
    )
    order = await make_old_order(db_session, user)
    await ReminderService.record_sent(db_session, settings, order)

    assert await ReminderService.find_due_orders(db_session, settings) == []


@pytest.mark.asyncio
async def test_blocked_user_is_skipped(db_session, user):
    await ReminderService.update_settings(db_session, enabled=True)
    await make_old_order(db_session, user)
    bot = make_bot()
    bot.send_message.side_effect = TelegramForbiddenError(method=MagicMock(), message="bot was blocked")

    assert await ReminderService.send_unpaid_order_reminders(db_session, bot) == 0


@pytest.mark.asyncio
async def test_format_message_falls_back_on_broken_template(db_session, user):
    settings = await ReminderService.update_settings(db_session, message_template="Привет {unknown}")
    order = await make_old_order(db_session, user)

    text = ReminderService.format_message(settings, order)

    assert order.order_number in text
    assert "1000" in text


@pytest.mark.asyncio
async def test_mark_converted(db_session, user):
    settings = await ReminderService.update_settings(db_session, enabled=True)
    order = await make_old_order(db_session, user)
    await ReminderService.record_sent(db_session, settings, order)

    assert await ReminderService.mark_converted(db_session, order.id) == 1
    assert await ReminderService.mark_converted(db_session, order.id) == 0

    await db_session.refresh(settings)
    assert settings.converted_count == 1
    assert settings.sent_count == 1


def test_schedule_reminder_tasks():
    scheduler = AsyncIOScheduler()
    schedule_reminder_tasks(scheduler, make_bot())

    job = scheduler.get_job("unpaid_order_reminders")
    assert job is not None
    assert job.max_instances == 1
