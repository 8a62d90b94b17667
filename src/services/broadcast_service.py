# coding: utf-8
"""
Broadcast Service - рассылки администратора

Поддерживает:
- Текст (HTML) и картинку по URL
- Inline кнопки, открывающие Mini App с start-параметром
- Повторную отправку прерванной рассылки (status=failed)
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

from aiogram import Bot
from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.exceptions import TelegramForbiddenError, TelegramBadRequest
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import BroadcastStatus
from src.database.models import Broadcast, User
from src.utils.dates import utcnow
from config.config import BOT_USERNAME


EDITABLE_FIELDS = {"title", "message", "image_url", "buttons"}


class BroadcastService:
    """Service for admin broadcasts"""

    # ===========================
    # CRUD OPERATIONS
    # ===========================

    @staticmethod
    def create_buttons_json(buttons: Optional[List[Dict[str, Any]]]) -> Optional[str]:
        """
        Validate buttons and serialize them

        Формат: [{"label": "Открыть каталог", "start_app_param": "catalog"}, ...]

        Raises:
            ValueError: button without label or start_app_param
        """
        if not buttons:
            return None

        cleaned = []
        for button in buttons:
            label = (button.get("label") or "").strip()
            param = (button.get("start_app_param") or "").strip()
            if not label or not param:
                raise ValueError("Each button needs label and start_app_param")
            cleaned.append({"label": label, "start_app_param": param})

        return json.dumps(cleaned, ensure_ascii=False)

    @staticmethod
    def get_buttons(broadcast: Broadcast) -> List[Dict[str, str]]:
        if not broadcast.buttons_json:
            return []
        return json.loads(broadcast.buttons_json)

    @staticmethod
    async def create_broadcast(
        session: AsyncSession,
        title: str,
        message: str,
        image_url: Optional[str] = None,
        buttons: Optional[List[Dict[str, Any]]] = None,
    ) -> Broadcast:
        """Создать рассылку-черновик"""
        if not title.strip() or not message.strip():
            raise ValueError("Broadcast title and message are required")

        broadcast = Broadcast(
            title=title.strip(),
            message=message,
            image_url=image_url or None,
            buttons_json=BroadcastService.create_buttons_json(buttons),
            status=BroadcastStatus.DRAFT.value,
        )
        session.add(broadcast)
        await session.commit()
        await session.refresh(broadcast)

        logger.info(f"Created broadcast: {broadcast.id} - {broadcast.title}")
        return broadcast

    @staticmethod
    async def get_broadcast(session: AsyncSession, broadcast_id: str) -> Optional[Broadcast]:
        # Counters and status change through bare UPDATEs
        return await session.get(Broadcast, broadcast_id, populate_existing=True)

    @staticmethod
    async def list_broadcasts(
        session: AsyncSession, limit: int = 50, offset: int = 0
    ) -> List[Broadcast]:
        stmt = (
            select(Broadcast)
            .order_by(Broadcast.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def update_broadcast(
        session: AsyncSession, broadcast_id: str, **fields
    ) -> Optional[Broadcast]:
        """
        Edit draft (or failed) broadcast; None values are ignored

        Raises:
            ValueError: broadcast is already sending / sent, or bad field
        """
        broadcast = await BroadcastService.get_broadcast(session, broadcast_id)
        if not broadcast:
            return None

        if broadcast.status in (BroadcastStatus.SENDING.value, BroadcastStatus.SENT.value):
            raise ValueError(f"Broadcast is {broadcast.status} and cannot be edited")

        for key, value in fields.items():
            if key not in EDITABLE_FIELDS:
                raise ValueError(f"Unknown broadcast field: {key}")
            if value is None:
                continue
            if key == "buttons":
                broadcast.buttons_json = BroadcastService.create_buttons_json(value)
            else:
                setattr(broadcast, key, value)

        await session.commit()
        await session.refresh(broadcast)
        return broadcast

    @staticmethod
    async def delete_broadcast(session: AsyncSession, broadcast_id: str) -> bool:
        """Удалить рассылку (кроме отправляемой прямо сейчас)"""
        broadcast = await BroadcastService.get_broadcast(session, broadcast_id)
        if not broadcast:
            return False

        if broadcast.status == BroadcastStatus.SENDING.value:
            raise ValueError("Broadcast is being sent and cannot be deleted")

        await session.delete(broadcast)
        await session.commit()
        logger.info(f"Deleted broadcast: {broadcast_id}")
        return True

    # ===========================
    # AUDIENCE
    # ===========================

    @staticmethod
    async def get_target_users(session: AsyncSession) -> List[User]:
        """Активные пользователи с telegram_id"""
        stmt = select(User).where(
            User.telegram_id.isnot(None),
            User.is_active.is_(True),
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ===========================
    # SENDING
    # ===========================

    @staticmethod
    def build_keyboard(broadcast: Broadcast) -> Optional[InlineKeyboardMarkup]:
        """One button per row, each opens the Mini App with its start param"""
        keyboard = [
            [
                InlineKeyboardButton(
                    text=button["label"],
                    url=f"https://t.me/{BOT_USERNAME}?startapp={button['start_app_param']}",
                )
            ]
            for button in BroadcastService.get_buttons(broadcast)
        ]
        return InlineKeyboardMarkup(inline_keyboard=keyboard) if keyboard else None

    @staticmethod
    async def send_broadcast_message(
        bot: Bot,
        chat_id: int,
        broadcast: Broadcast,
        reply_markup: Optional[InlineKeyboardMarkup],
    ) -> Tuple[bool, Optional[str]]:
        """
        Отправить сообщение пользователю

        Returns:
            (success, error_message)
        """
        try:
            if broadcast.image_url:
                await bot.send_photo(
                    chat_id=chat_id,
                    photo=broadcast.image_url,
                    caption=broadcast.message,
                    parse_mode="HTML",
                    reply_markup=reply_markup,
                )
            else:
                await bot.send_message(
                    chat_id=chat_id,
                    text=broadcast.message,
                    parse_mode="HTML",
                    reply_markup=reply_markup,
                )
            return True, None

        except TelegramForbiddenError:
            return False, "blocked"
        except TelegramBadRequest as e:
            return False, str(e)
        except Exception as e:
            logger.exception(f"Error sending broadcast to {chat_id}: {e}")
            return False, str(e)

    @staticmethod
    async def _claim(session: AsyncSession, broadcast_id: str) -> bool:
        """draft/failed -> sending; only one sender wins"""
        result = await session.execute(
            update(Broadcast)
            .where(
                Broadcast.id == broadcast_id,
                Broadcast.status.in_(
                    [BroadcastStatus.DRAFT.value, BroadcastStatus.FAILED.value]
                ),
            )
            .values(status=BroadcastStatus.SENDING.value, error_message=None)
            .returning(Broadcast.id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def _finish(session: AsyncSession, broadcast_id: str, **values) -> None:
        await session.execute(
            update(Broadcast)
            .where(Broadcast.id == broadcast_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

    @staticmethod
    async def execute_broadcast(
        session: AsyncSession,
        bot: Bot,
        broadcast_id: str,
        delay_between_messages: float = 0.05,
    ) -> Optional[Broadcast]:
        """
        Выполнить рассылку

        Args:
            session: Database session
            bot: Bot instance
            broadcast_id: Broadcast ID
            delay_between_messages: Задержка между сообщениями (сек)

        Returns:
            Broadcast with final counters, or None if not found

        Raises:
            ValueError: broadcast is already sending or was sent
        """
        if not await BroadcastService._claim(session, broadcast_id):
            await session.rollback()
            broadcast = await BroadcastService.get_broadcast(session, broadcast_id)
            if not broadcast:
                return None
            raise ValueError(f"Broadcast is {broadcast.status}")

        users = await BroadcastService.get_target_users(session)
        await session.execute(
            update(Broadcast)
            .where(Broadcast.id == broadcast_id)
            .values(total_recipients=len(users))
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        broadcast = await BroadcastService.get_broadcast(session, broadcast_id)
        reply_markup = BroadcastService.build_keyboard(broadcast)

        sent_count = 0
        failed_count = 0
        blocked_count = 0

        logger.info(f"Starting broadcast {broadcast_id} to {len(users)} users")

        try:
            for user in users:
                success, error = await BroadcastService.send_broadcast_message(
                    bot, user.telegram_id, broadcast, reply_markup
                )
                if success:
                    sent_count += 1
                else:
                    failed_count += 1
                    if error == "blocked":
                        blocked_count += 1
                    else:
                        logger.debug(f"Broadcast {broadcast_id} to {user.telegram_id} failed: {error}")

                # Задержка для избежания rate limit
                await asyncio.sleep(delay_between_messages)
        except Exception as e:
            logger.exception(f"Broadcast {broadcast_id} interrupted: {e}")
            await session.rollback()
            await BroadcastService._finish(
                session,
                broadcast_id,
                status=BroadcastStatus.FAILED.value,
                sent_count=sent_count,
                failed_count=failed_count,
                blocked_count=blocked_count,
                error_message=str(e),
            )
            raise

        await BroadcastService._finish(
            session,
            broadcast_id,
            status=BroadcastStatus.SENT.value,
            sent_count=sent_count,
            failed_count=failed_count,
            blocked_count=blocked_count,
            sent_at=utcnow(),
        )

        logger.info(
            f"Broadcast {broadcast_id} completed: "
            f"sent={sent_count}, failed={failed_count}, blocked={blocked_count}"
        )
        return await BroadcastService.get_broadcast(session, broadcast_id)
