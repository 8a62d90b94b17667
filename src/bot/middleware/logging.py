"""
Logging middleware - logs incoming messages/callbacks and handler time
"""

import time
from typing import Callable, Dict, Any, Awaitable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery
from loguru import logger


class LoggingMiddleware(BaseMiddleware):
    """Logs every update with user and execution time"""

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user_id = None
        update_type = type(event).__name__

        if isinstance(event, Message) and event.from_user:
            user_id = event.from_user.id
            text = event.text or f"[{event.content_type}]"
            logger.info(f"Message from @{event.from_user.username} (ID: {user_id}): {text[:100]}")
        elif isinstance(event, CallbackQuery):
            user_id = event.from_user.id
            logger.info(f"Callback from @{event.from_user.username} (ID: {user_id}): {event.data}")

        started = time.monotonic()
        try:
            result = await handler(event, data)
        except Exception as e:
            logger.error(f"{update_type} failed after {time.monotonic() - started:.3f}s (user: {user_id}): {e}")
            raise

        logger.debug(f"{update_type} processed in {time.monotonic() - started:.3f}s (user: {user_id})")
        return result
