"""
Tests for admin broadcasts
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from aiogram.exceptions import TelegramForbiddenError

from src.core.enums import BroadcastStatus
from src.database import crud
from src.services.broadcast_service import BroadcastService


def make_bot():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.send_photo = AsyncMock()
    return bot


async def make_draft(session, **kwargs):
    fields = {
        "title": "Новые боксы",
        "message": "<b>Осенняя коллекция</b> уже в каталоге",
        "buttons": [{"label": "Открыть каталог", "start_app_param": "catalog"}],
    }
    fields.update(kwargs)
    return await BroadcastService.create_broadcast(session, **fields)


# ============================================================================
# CRUD
# ============================================================================


@pytest.mark.asyncio
async def test_create_broadcast_draft(db_session):
    broadcast = await make_draft(db_session)

    assert broadcast.status == BroadcastStatus.DRAFT.value
    assert broadcast.sent_count == 0
    assert BroadcastService.get_buttons(broadcast) == [
        {"label": "Открыть каталог", "start_app_param": "catalog"}
    ]


@pytest.mark.asyncio
async def test_create_broadcast_validation(db_session):
    with pytest.raises(ValueError):
        await BroadcastService.create_broadcast(db_session, title=" ", message="text")
    with pytest.raises(ValueError):
        await make_draft(db_session, buttons=[{"label": "Без параметра"}])


def test_build_keyboard_opens_mini_app():
    broadcast = MagicMock()
    broadcast.buttons_json = '[{"label": "Бокс", "start_app_param": "box_42"}]'

    keyboard = BroadcastService.build_keyboard(broadcast)

    button = keyboard.inline_keyboard[0][0]
    assert button.text == "Бокс"
    assert button.url.endswith("?startapp=box_42")


def test_build_keyboard_without_buttons():
    broadcast = MagicMock()
    broadcast.buttons_json = None
    assert BroadcastService.build_keyboard(broadcast) is None


@pytest.mark.asyncio
async def test_update_and_delete_draft(db_session):
    broadcast = await make_draft(db_session)

    updated = await BroadcastService.update_broadcast(
        db_session, broadcast.id, title="Скидки недели", message=None, buttons=[]
    )

    assert updated.title == "Скидки недели"
    assert updated.message == "<b>Осенняя коллекция</b> уже в каталоге"
    assert updated.buttons_json is None

    assert await BroadcastService.delete_broadcast(db_session, broadcast.id) is True
    assert await BroadcastService.get_broadcast(db_session, broadcast.id) is None
    assert await BroadcastService.delete_broadcast(db_session, broadcast.id) is False


# ============================================================================
# SENDING
# ============================================================================


@pytest.mark.asyncio
async def test_execute_broadcast_counts_delivery(db_session, user, other_user):
    inactive = await crud.create_user(db_session, telegram_id=333333, username="Gone")
    inactive.is_active = False
    await db_session.commit()

    broadcast = await make_draft(db_session)
    bot = make_bot()
    bot.send_message.side_effect = [
        None,
        TelegramForbiddenError(method=MagicMock(), message="bot was blocked"),
    ]

    result = await BroadcastService.execute_broadcast(
        db_session, bot, broadcast.id, delay_between_messages=0
    )

    assert result.status == BroadcastStatus.SENT.value
    assert result.total_recipients == 2
    assert result.sent_count == 1
    assert result.failed_count == 1
    assert result.blocked_count == 1
    assert result.sent_at is not None

    chat_ids = {call.kwargs["chat_id"] for call in bot.send_message.call_args_list}
    assert chat_ids == {user.telegram_id, other_user.telegram_id}
    assert bot.send_message.call_args.kwargs["parse_mode"] == "HTML"
    assert bot.send_message.call_args.kwargs["reply_markup"] is not None


@pytest.mark.asyncio
async def test_execute_broadcast_with_image(db_session, user):
    broadcast = await make_draft(db_session, image_url="https://cdn.kavara.ru/autumn.jpg", buttons=None)
    bot = make_bot()

    result = await BroadcastService.execute_broadcast(
        db_session, bot, broadcast.id, delay_between_messages=0
    )

    assert result.sent_count == 1
    bot.send_message.assert_not_called()
    kwargs = bot.send_photo.call_args.kwargs
    assert kwargs["photo"] == "https://cdn.kavara.ru/autumn.jpg"
    assert kwargs["caption"] == broadcast.message
    assert kwargs["reply_markup"] is None


@pytest.mark.asyncio
async def test_sent_broadcast_is_not_resent(db_session, user):
    broadcast = await make_draft(db_session)
    bot = make_bot()
    await BroadcastService.execute_broadcast(db_session, bot, broadcast.id, delay_between_messages=0)

    with pytest.raises(ValueError):
        await BroadcastService.execute_broadcast(db_session, bot, broadcast.id, delay_between_messages=0)
    with pytest.raises(ValueError):
        await BroadcastService.update_broadcast(db_session, broadcast.id, title="Другое")

    assert bot.send_message.await_count == 1


@pytest.mark.asyncio
async def test_execute_unknown_broadcast(db_session):
    assert await BroadcastService.execute_broadcast(db_session, make_bot(), "missing") is None


@pytest.mark.asyncio
async def test_interrupted_broadcast_can_be_resent(db_session, user, monkeypatch):
    broadcast = await make_draft(db_session)
    original = BroadcastService.send_broadcast_message

    async def network_down(*args, **kwargs):
        raise RuntimeError("network down")

    monkeypatch.setattr(BroadcastService, "send_broadcast_message", staticmethod(network_down))

    with pytest.raises(RuntimeError):
        await BroadcastService.execute_broadcast(db_session, make_bot(), broadcast.id, delay_between_messages=0)

    failed = await BroadcastService.get_broadcast(db_session, broadcast.id)
    assert failed.status == BroadcastStatus.FAILED.value
    assert failed.error_message == "network down"

    monkeypatch.setattr(BroadcastService, "send_broadcast_message", staticmethod(original))
    bot = make_bot()
    result = await BroadcastService.execute_broadcast(db_session, bot, broadcast.id, delay_between_messages=0)

    assert result.status == BroadcastStatus.SENT.value
    assert result.sent_count == 1
    assert result.error_message is None
