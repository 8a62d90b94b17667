"""
Database middleware - provides database session and user object to handlers
"""

from typing import Callable, Dict, Any, Awaitable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery
from loguru import logger

from src.database.engine import get_session_maker
from src.database.crud import get_or_create_user
from config.config import ADMIN_IDS
from config.sentry import set_user_context


class DatabaseMiddleware(BaseMiddleware):
    """
    Middleware that provides database session and user object to handlers.

    Usage in handler:
        async def my_handler(message: Message, user: User, session: AsyncSession):
            ...
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        async with get_session_maker()() as session:
            data["session"] = session

            telegram_user = None
            if isinstance(event, (Message, CallbackQuery)):
                telegram_user = event.from_user

            if telegram_user:
                db_user, is_new_user = await get_or_create_user(
                    session,
                    telegram_id=telegram_user.id,
                    username=telegram_user.username,
                    first_name=telegram_user.first_name,
                    last_name=telegram_user.last_name,
                )

                # Admins from .env get the flag on first contact
                if telegram_user.id in ADMIN_IDS and not db_user.is_admin:
                    db_user.is_admin = True
                    await session.commit()

                data["user"] = db_user
                data["is_new_user"] = is_new_user
                set_user_context(telegram_user.id, telegram_user.username)
                logger.debug(f"User {db_user.id} (telegram_id={telegram_user.id}) loaded (is_new={is_new_user})")

                if not db_user.is_active:
                    logger.warning(f"Deactivated user {db_user.id} tried to access bot")
                    if isinstance(event, Message):
                        await event.answer("🚫 Ваш аккаунт деактивирован. Обратитесь в поддержку.")
                    elif isinstance(event, CallbackQuery):
                        await event.answer("🚫 Аккаунт деактивирован", show_alert=True)
                    return

            try:
                result = await handler(event, data)
                await session.commit()
                return result
            except Exception as e:
                await session.rollback()
                logger.error(f"Database error in handler: {e}")
                raise
