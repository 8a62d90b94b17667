# coding: utf-8
"""
Loyalty commands
/points - баланс и уровень
/referral - личный реферальный код и ссылка
"""

from typing import Dict

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import User
from src.services.loyalty_service import LoyaltyService
from src.services.referral_service import ReferralService
from config.config import BOT_USERNAME
from config.loyalty_config import (
    REFERRAL_BONUS_POINTS,
    REFERRAL_BUYER_DISCOUNT_PERCENT,
    REFERRAL_REWARD_PERCENT,
)

router = Router(name="loyalty")


def format_points_message(stats: Dict) -> str:
    text = (
        f"💎 <b>Ваши баллы: {stats['total_points']:,}</b>\n\n"
        f"🏅 Уровень: <b>{stats['level']}</b>\n"
    )
    if stats["points_to_next_level"]:
        text += f"📈 До следующего уровня: {stats['points_to_next_level']:,}\n"
    text += (
        f"\n➕ Заработано: {stats['total_earned']:,}\n"
        f"➖ Потрачено: {abs(stats['total_spent']):,}\n"
        f"👥 Приглашено друзей: {stats['total_referrals']}\n\n"
        "1 балл = 1 ₽ при оплате заказа"
    )
    return text.replace(",", " ")


@router.message(Command("points"))
async def cmd_points(message: Message, session: AsyncSession, user: User):
    stats = await LoyaltyService.get_stats(session, user.id)
    await message.answer(format_points_message(stats))


@router.message(Command("referral"))
async def cmd_referral(message: Message, session: AsyncSession, user: User):
    code = await ReferralService.generate_referral_code(session, user.id)
    link = f"https://t.me/{BOT_USERNAME}?start=ref_{code}"
    await message.answer(
        f"🎁 <b>Ваш код: <code>{code}</code></b>\n\n"
        f"Друг получает скидку {REFERRAL_BUYER_DISCOUNT_PERCENT}% по вашему коду.\n"
        f"Вы получаете {REFERRAL_REWARD_PERCENT}% от суммы его заказа баллами "
        f"и {REFERRAL_BONUS_POINTS} баллов за первую покупку.\n\n"
        f"🔗 {link}"
    )
