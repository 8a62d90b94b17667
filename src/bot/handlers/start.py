"""
/start command handler

Deep link /start ref_<CODE> links the new user to the code owner.
"""

from typing import Optional

from aiogram import Router
from aiogram.filters import CommandStart, CommandObject
from aiogram.types import Message, InlineKeyboardMarkup, InlineKeyboardButton, WebAppInfo
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import User
from src.services.referral_service import ReferralService
from config.config import WEBAPP_URL
from config.loyalty_config import REFERRAL_BUYER_DISCOUNT_PERCENT

router = Router(name="start")

REFERRAL_PREFIX = "ref_"


def get_main_menu() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🛍 Открыть магазин", web_app=WebAppInfo(url=WEBAPP_URL))],
        ]
    )


def parse_referral_code(args: Optional[str]) -> Optional[str]:
    """'ref_ivan1234' -> 'IVAN1234' (None for other deep links)"""
    if not args:
        return None
    args = args.strip()
    if not args.startswith(REFERRAL_PREFIX) or len(args) <= len(REFERRAL_PREFIX):
        return None
    return args[len(REFERRAL_PREFIX):].upper()


@router.message(CommandStart())
async def cmd_start(
    message: Message,
    command: CommandObject,
    session: AsyncSession,
    user: User,
    is_new_user: bool = False,
):
    """Greeting + referral deep link handling"""
    name = user.first_name or user.username or "друг"
    text = f"👋 Привет, {name}!\n\nKAVARA - боксы и экипировка для тренировок."

    code = parse_referral_code(command.args)
    if code and is_new_user:
        referral = await ReferralService.register_by_code(session, code, user.id)
        if referral:
            logger.info(f"User {user.id} joined by referral code {code}")
            text += (
                f"\n\n🎁 Вас пригласил друг! Используйте код <b>{code}</b> при заказе "
                f"и получите скидку {REFERRAL_BUYER_DISCOUNT_PERCENT}%."
            )
    elif code:
        logger.debug(f"Existing user {user.id} opened referral link {code}, ignored")

    await message.answer(text, reply_markup=get_main_menu())
