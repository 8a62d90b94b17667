# coding: utf-8
"""
Catalog Service - боксы и товары Mini App

Mini App reads only available items; the admin panel manages the rest.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.database import crud
from src.database.models import Box, Product


BOX_FIELDS = {"name", "description", "category", "price", "image_url", "is_available"}
PRODUCT_FIELDS = {"name", "description", "category", "price", "image_url", "is_available"}


def _check_price(price: Optional[int]) -> None:
    if price is not None and price < 0:
        raise ValueError("Price cannot be negative")


def _apply_fields(item, fields: dict, allowed: set) -> None:
    """Only provided (non-None) fields are updated"""
    for key, value in fields.items():
        if key not in allowed:
            raise ValueError(f"Unknown field: {key}")
        if value is not None:
            setattr(item, key, value)


class CatalogService:
    """Service for boxes and products"""

    # ===========================
    # BOXES
    # ===========================

    @staticmethod
    async def list_boxes(
        session: AsyncSession, category: Optional[str] = None, available_only: bool = True
    ) -> List[Box]:
        return await crud.get_boxes(session, category=category, available_only=available_only)

    @staticmethod
    async def get_box(session: AsyncSession, box_id: str) -> Optional[Box]:
        return await crud.get_box(session, box_id)

    @staticmethod
    async def create_box(
        session: AsyncSession,
        name: str,
        price: int,
        description: Optional[str] = None,
        category: Optional[str] = None,
        image_url: Optional[str] = None,
        is_available: bool = True,
    ) -> Box:
        _check_price(price)
        box = Box(
            name=name,
            price=price,
            description=description,
            category=category,
            image_url=image_url,
            is_available=is_available,
        )
        session.add(box)
        await session.commit()
        await session.refresh(box)

        logger.info(f"Created box {box.id}: {name} ({price} RUB)")
        return box

    @staticmethod
    async def update_box(session: AsyncSession, box_id: str, **fields) -> Optional[Box]:
        box = await crud.get_box(session, box_id)
        if not box:
            return None

        _check_price(fields.get("price"))
        _apply_fields(box, fields, BOX_FIELDS)
        await session.commit()
        await session.refresh(box)

        logger.info(f"Updated box {box_id}: {fields}")
        return box

    @staticmethod
    async def set_box_available(session: AsyncSession, box_id: str, is_available: bool) -> Optional[Box]:
        return await CatalogService.update_box(session, box_id, is_available=is_available)

    # ===========================
    # PRODUCTS
    # ===========================

    @staticmethod
    async def list_products(
        session: AsyncSession, category: Optional[str] = None, available_only: bool = True
    ) -> List[Product]:
        return await crud.get_products(session, category=category, available_only=available_only)

    @staticmethod
    async def get_product(session: AsyncSession, product_id: str) -> Optional[Product]:
        return await crud.get_product(session, product_id)

    @staticmethod
    async def create_product(
        session: AsyncSession,
        name: str,
        price: int,
        description: Optional[str] = None,
        category: Optional[str] = None,
        image_url: Optional[str] = None,
        is_available: bool = True,
    ) -> Product:
        _check_price(price)
        product = Product(
            name=name,
            price=price,
            description=description,
            category=category,
            image_url=image_url,
            is_available=is_available,
        )
        session.add(product)
        await session.commit()
        await session.refresh(product)

        logger.info(f"Created product {product.id}: {name} ({price} RUB)")
        return product

    @staticmethod
    async def update_product(session: AsyncSession, product_id: str, **fields) -> Optional[Product]:
        product = await crud.get_product(session, product_id)
        if not product:
            return None

        _check_price(fields.get("price"))
        _apply_fields(product, fields, PRODUCT_FIELDS)
        await session.commit()
        await session.refresh(product)

        logger.info(f"Updated product {product_id}: {fields}")
        return product

    @staticmethod
    async def set_product_available(
        session: AsyncSession, product_id: str, is_available: bool
    ) -> Optional[Product]:
        return await CatalogService.update_product(session, product_id, is_available=is_available)
