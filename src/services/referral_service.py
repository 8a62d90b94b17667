# coding: utf-8
"""
KAVARA Referral Service

- Personal referral codes (registered as referral-type promo codes)
- Referrer -> referred links
- One-time referral bonus on the referred user's first paid order
"""

import random
import re
import time
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from loguru import logger

from src.core.enums import (
    EngineErrorKind,
    LoyaltyTransactionType,
    PromoCodeType,
    ReferralStatus,
)
from src.core.exceptions import wraps_storage_errors
from src.core.results import ReferralCompletionResult
from src.database import crud
from src.database.models import Referral, PromoCode
from src.utils.dates import utcnow
from config.loyalty_config import (
    REFERRAL_BONUS_POINTS,
    REFERRAL_BUYER_DISCOUNT_PERCENT,
    REFERRAL_CODE_ATTEMPTS,
    REFERRAL_CODE_DEFAULT_BASE,
    REFERRAL_CODE_FALLBACK_PREFIX,
    REFERRAL_CODE_MAX_BASE_LENGTH,
    REFERRAL_CODE_SUFFIX_DIGITS,
    REFERRAL_REWARD_PERCENT,
)


def _code_base(username: Optional[str]) -> str:
    """Latin letters and digits of the username, upper-cased"""
    base = re.sub(r"[^A-Z0-9]", "", (username or "").upper())
    return base[:REFERRAL_CODE_MAX_BASE_LENGTH] or REFERRAL_CODE_DEFAULT_BASE


def _random_suffix() -> str:
    low = 10 ** (REFERRAL_CODE_SUFFIX_DIGITS - 1)
    return str(random.randint(low, low * 10 - 1))


class ReferralService:
    """Service for referral codes and referral bonuses"""

    @staticmethod
    @wraps_storage_errors("referral.generate_code")
    async def generate_referral_code(session: AsyncSession, user_id: str) -> Optional[str]:
        """
        Get or create user's personal referral code

        Format: <USERNAME or USER><4 digits>, falls back to
        KAVARA<6 timestamp digits> when every attempt collides.
        The code is also registered as a referral promo code owned by the
        user, so the buyer gets a discount and the owner gets points.

        Returns:
            Referral code, or None if user does not exist
        """
        user = await crud.get_user(session, user_id)
        if not user:
            return None
        if user.referral_code:
            return user.referral_code

        base = _code_base(user.username)
        code = None
        for _ in range(REFERRAL_CODE_ATTEMPTS):
            candidate = f"{base}{_random_suffix()}"
            if not await crud.is_code_taken(session, candidate):
                code = candidate
                break

        if code is None:
            code = f"{REFERRAL_CODE_FALLBACK_PREFIX}{str(int(time.time() * 1000))[-6:]}"
            logger.warning(f"Referral code attempts exhausted for user {user_id}, using {code}")

        try:
            user.referral_code = code
            session.add(
                PromoCode(
                    code=code,
                    type=PromoCodeType.REFERRAL.value,
                    discount_percent=REFERRAL_BUYER_DISCOUNT_PERCENT,
                    owner_id=user.id,
                    reward_percent=REFERRAL_REWARD_PERCENT,
                )
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"Generated referral code {code} for user {user_id}")
        return code

    @staticmethod
    @wraps_storage_errors("referral.register")
    async def register_referral(
        session: AsyncSession,
        referrer_id: str,
        referred_id: str,
        commit: bool = True,
    ) -> Optional[Referral]:
        """
        Link referred user to referrer (pending until first paid order)

        A user can be referred only once and never by themselves.

        Returns:
            Created Referral, or None when the link is not allowed
        """
        if referrer_id == referred_id:
            logger.debug(f"Self-referral blocked for user {referrer_id}")
            return None

        referred = await crud.get_user(session, referred_id)
        referrer = await crud.get_user(session, referrer_id)
        if not referred or not referrer:
            return None

        if referred.referred_by and referred.referred_by != referrer_id:
            logger.debug(f"User {referred_id} already referred by {referred.referred_by}")
            return None

        if await crud.get_referral_for_referred(session, referred_id):
            logger.debug(f"Referral for user {referred_id} already exists")
            return None

        referral = Referral(referrer_id=referrer_id, referred_id=referred_id)
        session.add(referral)
        referred.referred_by = referrer_id

        try:
            if commit:
                await session.commit()
            else:
                await session.flush()
        except IntegrityError:
            if not commit:
                raise
            await session.rollback()
            logger.info(f"Concurrent referral registration for {referred_id} rejected")
            return None

        logger.info(f"Referral created: {referrer_id} -> {referred_id}")
        return referral

    @staticmethod
    @wraps_storage_errors("referral.complete")
    async def complete_referral(session: AsyncSession, referral_id: str) -> ReferralCompletionResult:
        """
        Mark referral completed and credit referrer's bonus exactly once

        pending/false -> completed/true is a conditional UPDATE; only the
        caller that flips the flag writes the ledger entry. Repeat calls
        return ok with bonus_awarded_now=False.
        """
        referral = await crud.get_referral(session, referral_id)
        if not referral:
            return ReferralCompletionResult(error=EngineErrorKind.NOT_FOUND, referral_id=referral_id)
        referrer_id = referral.referrer_id

        try:
            stmt = (
                update(Referral)
                .where(Referral.id == referral_id, Referral.bonus_awarded.is_(False))
                .values(
                    status=ReferralStatus.COMPLETED.value,
                    bonus_awarded=True,
                    completed_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.commit()
                logger.debug(f"Referral {referral_id} already completed")
                return ReferralCompletionResult(referral_id=referral_id)

            await crud.add_loyalty_points(session, referrer_id, REFERRAL_BONUS_POINTS)
            await crud.add_ledger_entry(
                session,
                user_id=referrer_id,
                transaction_type=LoyaltyTransactionType.REFERRAL_BONUS.value,
                points=REFERRAL_BONUS_POINTS,
                description="Бонус за приглашённого друга",
                idempotency_key=f"referral_bonus:{referral_id}",
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info(f"Referral bonus for {referral_id} already credited")
            return ReferralCompletionResult(referral_id=referral_id)
        except Exception:
            await session.rollback()
            raise

        logger.info(f"Referral {referral_id} completed, referrer {referrer_id} +{REFERRAL_BONUS_POINTS}")
        return ReferralCompletionResult(
            referral_id=referral_id, bonus_awarded_now=True, points=REFERRAL_BONUS_POINTS
        )

    @staticmethod
    async def complete_for_referred_user(
        session: AsyncSession, user_id: str
    ) -> Optional[ReferralCompletionResult]:
        """Complete the referral that brought user_id (None if not referred)"""
        referral = await crud.get_referral_for_referred(session, user_id)
        if not referral:
            return None
        return await ReferralService.complete_referral(session, referral.id)

    @staticmethod
    async def get_referrals(session: AsyncSession, user_id: str) -> List[Referral]:
        """Referrals made by user, newest first, with referred user loaded"""
        stmt = (
            select(Referral)
            .where(Referral.referrer_id == user_id)
            .options(selectinload(Referral.referred))
            .order_by(Referral.created_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def register_by_code(session: AsyncSession, code: str, referred_id: str) -> Optional[Referral]:
        """Deep-link entry (/start ref_CODE): resolve code owner and register"""
        referrer = await crud.get_user_by_referral_code(session, code)
        if not referrer:
            logger.debug(f"Referral code {code} not found")
            return None
        return await ReferralService.register_referral(session, referrer.id, referred_id)
