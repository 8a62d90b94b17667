# coding: utf-8
"""
Favorites Service - избранные боксы и товары пользователя
"""

from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.database import crud
from src.database.models import Favorite


def _check_target(box_id: Optional[str], product_id: Optional[str]) -> None:
    if bool(box_id) == bool(product_id):
        raise ValueError("Exactly one of box_id or product_id is required")


class FavoritesService:
    """Service for user favorites"""

    @staticmethod
    async def add_favorite(
        session: AsyncSession,
        user_id: str,
        box_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Favorite:
        """Add item to favorites (returns existing row if already there)"""
        _check_target(box_id, product_id)

        existing = await crud.get_favorite(session, user_id, box_id=box_id, product_id=product_id)
        if existing:
            return existing

        favorite = Favorite(user_id=user_id, box_id=box_id, product_id=product_id)
        session.add(favorite)
        try:
            await session.commit()
        except IntegrityError:
            # Added concurrently (double tap)
            await session.rollback()
            existing = await crud.get_favorite(session, user_id, box_id=box_id, product_id=product_id)
            if existing is None:
                raise
            return existing

        logger.debug(f"User {user_id} added favorite box={box_id} product={product_id}")
        return favorite

    @staticmethod
    async def remove_favorite(
        session: AsyncSession,
        user_id: str,
        box_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> bool:
        _check_target(box_id, product_id)
        return await crud.delete_favorite(session, user_id, box_id=box_id, product_id=product_id)

    @staticmethod
    async def toggle_favorite(
        session: AsyncSession,
        user_id: str,
        box_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Tuple[bool, Optional[Favorite]]:
        """
        Returns:
            (is_favorite after toggle, Favorite or None)
        """
        _check_target(box_id, product_id)
        if await crud.get_favorite(session, user_id, box_id=box_id, product_id=product_id):
            await crud.delete_favorite(session, user_id, box_id=box_id, product_id=product_id)
            return False, None

        favorite = await FavoritesService.add_favorite(session, user_id, box_id, product_id)
        return True, favorite

    @staticmethod
    async def list_favorites(session: AsyncSession, user_id: str) -> List[Favorite]:
        return await crud.get_user_favorites(session, user_id)

    @staticmethod
    async def is_favorite(
        session: AsyncSession,
        user_id: str,
        box_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> bool:
        _check_target(box_id, product_id)
        return await crud.get_favorite(session, user_id, box_id=box_id, product_id=product_id) is not None
