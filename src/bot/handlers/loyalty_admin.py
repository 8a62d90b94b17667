# coding: utf-8
"""
Loyalty admin commands (только для админов)
/award <username> <points> [description]
/recalc <username>
"""

from typing import Optional, Tuple

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.crud import get_user_by_username
from src.database.models import User
from src.services.loyalty_service import LoyaltyService

router = Router(name="loyalty_admin")

AWARD_USAGE = (
    "📝 <b>Использование:</b>\n"
    "/award &lt;username&gt; &lt;points&gt; [описание]\n\n"
    "<b>Пример:</b>\n"
    "/award @ivan 500 Подарок за отзыв"
)


def parse_award_args(text: str) -> Optional[Tuple[str, int, Optional[str]]]:
    """'/award @ivan 500 За отзыв' -> ('@ivan', 500, 'За отзыв')"""
    parts = (text or "").split(maxsplit=3)
    if len(parts) < 3:
        return None
    try:
        points = int(parts[2])
    except ValueError:
        return None
    return parts[1], points, parts[3] if len(parts) > 3 else None


@router.message(Command("award"))
async def cmd_award(message: Message, session: AsyncSession, user: User):
    if not user.is_admin:
        await message.answer("⛔ Эта команда доступна только администраторам.")
        return

    args = parse_award_args(message.text)
    if not args:
        await message.answer(AWARD_USAGE)
        return

    username, points, description = args
    result = await LoyaltyService.award_manual(session, username, points, description)
    if not result.ok:
        await message.answer(f"❌ {result.message}")
        return

    logger.info(f"Admin {user.telegram_id} awarded {points} points to {username}")
    await message.answer(
        f"✅ <b>{'Начислено' if points > 0 else 'Списано'} {abs(points)} баллов</b>\n\n"
        f"👤 {username}\n"
        f"💎 Новый баланс: <b>{result.balance}</b>"
    )


@router.message(Command("recalc"))
async def cmd_recalc(message: Message, session: AsyncSession, user: User):
    if not user.is_admin:
        await message.answer("⛔ Эта команда доступна только администраторам.")
        return

    parts = (message.text or "").split()
    if len(parts) < 2:
        await message.answer("📝 Использование: /recalc &lt;username&gt;")
        return

    target = await get_user_by_username(session, parts[1])
    if not target:
        await message.answer(f"❌ Пользователь {parts[1]} не найден")
        return

    result = await LoyaltyService.recalculate(session, target.id)
    await message.answer(
        f"🔄 Баланс {parts[1]} пересчитан: {result.previous_balance} → <b>{result.balance}</b>"
        + (f"\n⚠️ Расхождение: {result.drift:+d}" if result.drift else "")
    )
