# coding: utf-8
"""
KAVARA Trainer Service

Trainer partners: each trainer owns one trainer-type promo code.
Commission stats are accumulated by PromoCodeService.apply.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.core.enums import PromoCodeType
from src.database import crud
from src.database.models import Trainer, PromoCode
from config.loyalty_config import (
    TRAINER_DEFAULT_DISCOUNT_PERCENT,
    TRAINER_DEFAULT_COMMISSION_PERCENT,
)


class TrainerService:
    """Service for trainer partners"""

    @staticmethod
    async def create_trainer(
        session: AsyncSession,
        email: str,
        name: str,
        promo_code: str,
        phone: Optional[str] = None,
        gym: Optional[str] = None,
        discount_percent: float = TRAINER_DEFAULT_DISCOUNT_PERCENT,
        commission_percent: float = TRAINER_DEFAULT_COMMISSION_PERCENT,
    ) -> Trainer:
        """
        Create trainer together with their trainer-type promo code

        Raises:
            ValueError: percent out of range
            IntegrityError: email or code already taken
        """
        if not 0 <= discount_percent <= 100 or not 0 <= commission_percent <= 100:
            raise ValueError("Percent values must be between 0 and 100")

        code = crud.normalize_code(promo_code)
        trainer = Trainer(
            email=email,
            name=name,
            phone=phone,
            gym=gym,
            promo_code=code,
            discount_percent=discount_percent,
            commission_percent=commission_percent,
        )
        try:
            session.add(trainer)
            await session.flush()
            session.add(
                PromoCode(
                    code=code,
                    type=PromoCodeType.TRAINER.value,
                    discount_percent=discount_percent,
                    trainer_id=trainer.id,
                    partner_name=name,
                    partner_contact=phone or email,
                )
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"Trainer {name} created with code {code} ({discount_percent}% / {commission_percent}%)")
        return trainer

    @staticmethod
    async def get_trainer(session: AsyncSession, trainer_id: str) -> Optional[Trainer]:
        return await crud.get_trainer(session, trainer_id)

    @staticmethod
    async def list_trainers(session: AsyncSession, active_only: bool = False) -> List[Trainer]:
        stmt = select(Trainer).order_by(Trainer.total_earnings.desc())
        if active_only:
            stmt = stmt.where(Trainer.is_active.is_(True))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def update_discount(
        session: AsyncSession, trainer_id: str, discount_percent: float
    ) -> Optional[Trainer]:
        """Change trainer discount, keeping the linked promo code in sync"""
        if not 0 <= discount_percent <= 100:
            raise ValueError("discount_percent must be between 0 and 100")

        trainer = await crud.get_trainer(session, trainer_id)
        if not trainer:
            return None

        trainer.discount_percent = discount_percent
        result = await session.execute(
            select(PromoCode).where(PromoCode.trainer_id == trainer_id)
        )
        for promo in result.scalars().all():
            promo.discount_percent = discount_percent

        await session.commit()
        logger.info(f"Trainer {trainer.name} discount set to {discount_percent}%")
        return trainer

    @staticmethod
    async def set_active(session: AsyncSession, trainer_id: str, is_active: bool) -> Optional[Trainer]:
        trainer = await crud.get_trainer(session, trainer_id)
        if not trainer:
            return None
        trainer.is_active = is_active
        await session.commit()
        return trainer

    @staticmethod
    async def record_order(session: AsyncSession, trainer_id: str, commission: int) -> None:
        """Atomic total_orders + 1 / total_earnings + commission (caller commits)"""
        await crud.increment_trainer_stats(session, trainer_id, commission)
