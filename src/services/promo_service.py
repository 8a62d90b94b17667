# coding: utf-8
"""
KAVARA Promo Code Service

Validation (read-only) and application (on order paid) of promo codes,
plus admin management.

Apply is idempotent per order: PromoCodeUsage.order_id is unique, and
used_count is bumped by a conditional UPDATE that cannot pass max_uses.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.core.enums import EngineErrorKind, LoyaltyTransactionType, PromoCodeType
from src.core.exceptions import wraps_storage_errors
from src.core.results import PromoValidationResult, PromoApplicationResult
from src.database import crud
from src.database.models import PromoCode, PromoCodeUsage, Order
from src.utils.dates import as_utc, utcnow
from src.services.trainer_service import TrainerService
from src.utils.money import percent_of


class PromoCodeService:
    """Service for promo code validation and redemption"""

    @staticmethod
    def _rejection(promo: PromoCode, user_id: Optional[str] = None) -> Optional[EngineErrorKind]:
        """First failing usability rule, checked in a fixed order"""
        if not promo.is_active:
            return EngineErrorKind.INACTIVE
        if promo.trainer is not None and not promo.trainer.is_active:
            return EngineErrorKind.INACTIVE
        if promo.expires_at is not None and as_utc(promo.expires_at) < utcnow():
            return EngineErrorKind.EXPIRED
        if promo.max_uses is not None and promo.used_count >= promo.max_uses:
            return EngineErrorKind.USAGE_LIMIT_REACHED
        if user_id is not None and promo.owner_id == user_id:
            return EngineErrorKind.OWN_CODE
        return None

    @staticmethod
    def calculate_discount(promo: PromoCode, order_amount: int) -> int:
        """Fixed discount_amount wins over percent; never exceeds the order"""
        if promo.discount_amount:
            return min(promo.discount_amount, order_amount)
        return percent_of(order_amount, promo.discount_percent)

    @staticmethod
    @wraps_storage_errors("promo.validate")
    async def validate(
        session: AsyncSession,
        code: str,
        order_amount: int,
        user_id: Optional[str] = None,
    ) -> PromoValidationResult:
        """
        Check whether code is usable for an order of order_amount

        Read-only: never touches used_count.

        Args:
            session: Database session
            code: Code as typed by the customer (case-insensitive)
            order_amount: Order amount in RUB (>= 0)
            user_id: Customer, to reject redeeming own referral code

        Returns:
            PromoValidationResult
        """
        normalized = crud.normalize_code(code or "")
        if order_amount < 0:
            return PromoValidationResult.rejected(EngineErrorKind.INVALID_AMOUNT, normalized)

        if not normalized:
            return PromoValidationResult.rejected(EngineErrorKind.NOT_FOUND, normalized)

        promo = await crud.get_promo_code_by_code(session, normalized)
        if not promo:
            logger.debug(f"Promo code {normalized} not found")
            return PromoValidationResult.rejected(EngineErrorKind.NOT_FOUND, normalized)

        error = PromoCodeService._rejection(promo, user_id)
        if error:
            logger.debug(f"Promo code {normalized} rejected: {error.value}")
            return PromoValidationResult.rejected(error, normalized)

        return PromoValidationResult(
            is_valid=True,
            code=promo.code,
            promo_code_id=promo.id,
            discount_percent=promo.discount_percent,
            discount_amount=PromoCodeService.calculate_discount(promo, order_amount),
            trainer_id=promo.trainer_id,
            trainer_name=promo.trainer.name if promo.trainer else None,
            owner_id=promo.owner_id,
        )

    @staticmethod
    @wraps_storage_errors("promo.apply")
    async def apply(session: AsyncSession, order_id: str) -> PromoApplicationResult:
        """
        Record redemption of the order's promo code

        In one transaction:
        - usage row (unique per order)
        - conditional used_count increment
        - owner reward (points_per_use, else reward_percent of total_price)
        - trainer stats (total_orders + 1, total_earnings + commission)

        Nothing is written when any step is rejected.
        """
        order = await crud.get_order(session, order_id)
        if not order or not order.promo_code_id:
            return PromoApplicationResult(error=EngineErrorKind.NOT_FOUND)

        existing = await session.execute(
            select(PromoCodeUsage.id).where(PromoCodeUsage.order_id == order_id)
        )
        if existing.first() is not None:
            logger.debug(f"Promo already applied for order {order_id}")
            return PromoApplicationResult(
                error=EngineErrorKind.ALREADY_APPLIED, promo_code_id=order.promo_code_id
            )

        promo = await crud.get_promo_code(session, order.promo_code_id)
        if not promo:
            return PromoApplicationResult(error=EngineErrorKind.NOT_FOUND)

        error = PromoCodeService._rejection(promo)
        if error:
            logger.info(f"Promo {promo.code} not applied to order {order.order_number}: {error.value}")
            return PromoApplicationResult(error=error, promo_code_id=promo.id)

        promo_id, code, order_number = promo.id, promo.code, order.order_number
        owner_points = 0
        commission = 0
        try:
            usage = PromoCodeUsage(
                promo_code_id=promo.id,
                user_id=order.user_id,
                order_id=order.id,
                order_amount=order.total_price,
                discount_amount=order.discount_amount,
            )
            session.add(usage)
            await session.flush()

            used_count = await crud.increment_promo_usage(session, promo.id)
            if used_count is None:
                await session.rollback()
                logger.info(f"Promo {code} hit usage limit while applying to {order_number}")
                return PromoApplicationResult(
                    error=EngineErrorKind.USAGE_LIMIT_REACHED, promo_code_id=promo_id
                )

            if promo.owner_id and promo.owner_id != order.user_id:
                owner_points = promo.points_per_use or percent_of(
                    order.total_price, promo.reward_percent
                )
                if owner_points > 0:
                    await crud.add_loyalty_points(session, promo.owner_id, owner_points)
                    await crud.add_ledger_entry(
                        session,
                        user_id=promo.owner_id,
                        transaction_type=LoyaltyTransactionType.REFERRAL_REWARD.value,
                        points=owner_points,
                        description=f"Вознаграждение за заказ {order.order_number} по промокоду {promo.code}",
                        order_id=order.id,
                        idempotency_key=f"promo_reward:{order.id}",
                    )
                    usage.points_awarded = owner_points

            if promo.trainer_id and promo.trainer:
                commission = percent_of(order.total_price, promo.trainer.commission_percent)
                await TrainerService.record_order(session, promo.trainer_id, commission)

            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info(f"Concurrent promo application for order {order_id} rejected")
            return PromoApplicationResult(
                error=EngineErrorKind.ALREADY_APPLIED, promo_code_id=promo_id
            )
        except Exception:
            await session.rollback()
            raise

        logger.info(
            f"Promo {promo.code} applied to order {order.order_number}: "
            f"used {used_count}/{promo.max_uses}, owner +{owner_points}, trainer +{commission}"
        )
        return PromoApplicationResult(
            promo_code_id=promo.id,
            used_count=used_count,
            owner_points_awarded=owner_points,
            trainer_commission=commission,
        )

    # ===========================
    # ADMIN
    # ===========================

    @staticmethod
    async def create_promo_code(
        session: AsyncSession,
        code: str,
        discount_percent: float = 0,
        discount_amount: Optional[int] = None,
        promo_type: str = PromoCodeType.GENERAL.value,
        max_uses: Optional[int] = None,
        expires_at: Optional[datetime] = None,
        trainer_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        points_per_use: int = 0,
        reward_percent: float = 0,
        partner_name: Optional[str] = None,
        partner_contact: Optional[str] = None,
        commit: bool = True,
    ) -> PromoCode:
        """
        Create promo code

        Raises:
            ValueError: empty code, percent out of 0..100, negative amounts
            IntegrityError: code already exists
        """
        normalized = crud.normalize_code(code)
        if not normalized:
            raise ValueError("Promo code must not be empty")
        if not 0 <= discount_percent <= 100 or not 0 <= reward_percent <= 100:
            raise ValueError("Percent values must be between 0 and 100")
        if (discount_amount is not None and discount_amount < 0) or points_per_use < 0:
            raise ValueError("Amounts must not be negative")
        if max_uses is not None and max_uses < 0:
            raise ValueError("max_uses must not be negative")

        promo = PromoCode(
            code=normalized,
            type=promo_type,
            discount_percent=discount_percent,
            discount_amount=discount_amount,
            max_uses=max_uses,
            expires_at=expires_at,
            trainer_id=trainer_id,
            owner_id=owner_id,
            points_per_use=points_per_use,
            reward_percent=reward_percent,
            partner_name=partner_name,
            partner_contact=partner_contact,
        )
        session.add(promo)
        try:
            if commit:
                await session.commit()
                await session.refresh(promo)
            else:
                await session.flush()
        except IntegrityError:
            if commit:
                await session.rollback()
            raise

        logger.info(f"Promo code {normalized} created ({promo_type}, {discount_percent}%)")
        return promo

    @staticmethod
    async def list_promo_codes(
        session: AsyncSession,
        promo_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[PromoCode]:
        stmt = select(PromoCode).order_by(PromoCode.created_at.desc())
        if promo_type:
            stmt = stmt.where(PromoCode.type == promo_type)
        if active_only:
            stmt = stmt.where(PromoCode.is_active.is_(True))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def set_active(session: AsyncSession, promo_code_id: str, is_active: bool) -> Optional[PromoCode]:
        promo = await crud.get_promo_code(session, promo_code_id)
        if not promo:
            return None
        promo.is_active = is_active
        await session.commit()
        logger.info(f"Promo code {promo.code} {'activated' if is_active else 'deactivated'}")
        return promo

    @staticmethod
    async def get_usage_stats(session: AsyncSession, promo_code_id: str) -> Optional[Dict]:
        """Usage count, revenue, discounts and owner points for one code"""
        promo = await crud.get_promo_code(session, promo_code_id)
        if not promo:
            return None

        stmt = select(
            func.count(PromoCodeUsage.id),
            func.coalesce(func.sum(PromoCodeUsage.order_amount), 0),
            func.coalesce(func.sum(PromoCodeUsage.discount_amount), 0),
            func.coalesce(func.sum(PromoCodeUsage.points_awarded), 0),
        ).where(PromoCodeUsage.promo_code_id == promo_code_id)
        uses, revenue, discounts, points = (await session.execute(stmt)).one()

        return {
            "code": promo.code,
            "used_count": promo.used_count,
            "max_uses": promo.max_uses,
            "total_uses": int(uses),
            "total_revenue": int(revenue),
            "total_discount": int(discounts),
            "total_points_awarded": int(points),
        }

    @staticmethod
    async def get_orders_for_code(session: AsyncSession, promo_code_id: str) -> List[Order]:
        stmt = (
            select(Order)
            .where(Order.promo_code_id == promo_code_id)
            .order_by(Order.created_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
