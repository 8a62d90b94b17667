# coding: utf-8
"""
KAVARA Loyalty Service

Loyalty points ledger and cached balance.

Features:
- Append-only ledger, balance cache co-written in the same transaction
- Atomic SQL increments (no read-modify-write)
- Idempotent earns via idempotency_key
- Manual admin grants by exact username
- Cache repair from ledger (single user / everyone)
"""

from typing import Dict, List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.core.enums import EngineErrorKind, LoyaltyTransactionType
from src.core.exceptions import wraps_storage_errors
from src.core.results import LedgerResult, RecalculationResult
from src.database import crud
from src.database.models import LoyaltyTransaction
from config.loyalty_config import get_loyalty_level


class LoyaltyService:
    """Service for managing loyalty points"""

    @staticmethod
    @wraps_storage_errors("loyalty.earn")
    async def earn(
        session: AsyncSession,
        user_id: str,
        points: int,
        order_id: Optional[str] = None,
        description: Optional[str] = None,
        transaction_type: str = LoyaltyTransactionType.EARN.value,
        idempotency_key: Optional[str] = None,
        commit: bool = True,
    ) -> LedgerResult:
        """
        Credit points to user

        Args:
            session: Database session
            user_id: User ID
            points: Positive amount
            order_id: Related order (optional)
            description: Human-readable description
            transaction_type: earn / referral_bonus / referral_reward
            idempotency_key: Natural key - repeated call returns the existing entry
            commit: False when caller owns the transaction

        Returns:
            LedgerResult with new balance, or InvalidAmount / UserNotFound
        """
        if points <= 0:
            return LedgerResult(error=EngineErrorKind.INVALID_AMOUNT, user_id=user_id)

        if idempotency_key:
            existing = await crud.get_ledger_entry_by_key(session, idempotency_key)
            if existing:
                logger.debug(f"Ledger entry {idempotency_key} already exists, skipping")
                return LedgerResult(
                    user_id=user_id,
                    transaction_id=existing.id,
                    points=0,
                    balance=await crud.get_cached_balance(session, user_id) or 0,
                )

        try:
            balance = await crud.add_loyalty_points(session, user_id, points)
            if balance is None:
                if commit:
                    await session.rollback()
                return LedgerResult(error=EngineErrorKind.USER_NOT_FOUND, user_id=user_id)

            entry = await crud.add_ledger_entry(
                session,
                user_id=user_id,
                transaction_type=transaction_type,
                points=points,
                description=description or f"Начислено {points} баллов",
                order_id=order_id,
                idempotency_key=idempotency_key,
            )
            if commit:
                await session.commit()
        except IntegrityError:
            # Concurrent duplicate with the same idempotency_key
            if not commit:
                raise
            await session.rollback()
            logger.info(f"Duplicate ledger entry {idempotency_key} rejected")
            return LedgerResult(
                user_id=user_id,
                points=0,
                balance=await crud.get_cached_balance(session, user_id) or 0,
            )
        except Exception:
            await session.rollback()
            raise

        logger.info(f"User {user_id} earned {points} points ({transaction_type}), balance {balance}")
        return LedgerResult(user_id=user_id, transaction_id=entry.id, points=points, balance=balance)

    @staticmethod
    @wraps_storage_errors("loyalty.redeem")
    async def redeem(
        session: AsyncSession,
        user_id: str,
        points: int,
        order_id: Optional[str] = None,
        max_usable_points: Optional[int] = None,
        description: Optional[str] = None,
        commit: bool = True,
    ) -> LedgerResult:
        """
        Spend points against an order

        Balance can never go negative: the decrement is a conditional
        UPDATE that matches only while loyalty_points >= points.

        Returns:
            LedgerResult with negative points delta, or
            InvalidAmount / InsufficientBalance / UserNotFound
        """
        if points <= 0:
            return LedgerResult(error=EngineErrorKind.INVALID_AMOUNT, user_id=user_id)

        if max_usable_points is not None and points > max_usable_points:
            logger.info(f"User {user_id} tried to redeem {points} > cap {max_usable_points}")
            return LedgerResult(error=EngineErrorKind.INSUFFICIENT_BALANCE, user_id=user_id)

        try:
            balance = await crud.spend_loyalty_points(session, user_id, points)
            if balance is None:
                current = await crud.get_cached_balance(session, user_id)
                if commit:
                    await session.rollback()
                if current is None:
                    return LedgerResult(error=EngineErrorKind.USER_NOT_FOUND, user_id=user_id)
                logger.info(f"User {user_id} has {current} points, cannot redeem {points}")
                return LedgerResult(
                    error=EngineErrorKind.INSUFFICIENT_BALANCE, user_id=user_id, balance=current
                )

            entry = await crud.add_ledger_entry(
                session,
                user_id=user_id,
                transaction_type=LoyaltyTransactionType.SPEND.value,
                points=-points,
                description=description or f"Списано {points} баллов",
                order_id=order_id,
                idempotency_key=f"spend:{order_id}" if order_id else None,
            )
            if commit:
                await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"User {user_id} redeemed {points} points, balance {balance}")
        return LedgerResult(user_id=user_id, transaction_id=entry.id, points=-points, balance=balance)

    @staticmethod
    @wraps_storage_errors("loyalty.recalculate")
    async def recalculate(session: AsyncSession, user_id: str) -> RecalculationResult:
        """
        Overwrite cached balance with sum(ledger)

        Idempotent: a second call reports zero drift.
        The user row stays locked from the read of the old balance until
        commit, and the new balance is computed inside the UPDATE itself.
        """
        try:
            previous = await crud.lock_user_balance(session, user_id)
            if previous is None:
                await session.rollback()
                return RecalculationResult(error=EngineErrorKind.USER_NOT_FOUND, user_id=user_id)

            ledger_sum = await crud.sync_loyalty_points_with_ledger(session, user_id)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        if ledger_sum != previous:
            logger.warning(f"User {user_id} balance drift corrected: {previous} -> {ledger_sum}")

        return RecalculationResult(user_id=user_id, previous_balance=previous, balance=ledger_sum)

    @staticmethod
    async def recalculate_all(session: AsyncSession) -> Dict[str, int]:
        """Admin repair: recalculate every user, return {user_id: drift} for drifted ones"""
        drifted = {}
        for user_id in await crud.get_all_user_ids(session):
            result = await LoyaltyService.recalculate(session, user_id)
            if result.ok and result.drift:
                drifted[user_id] = result.drift

        logger.info(f"Recalculated all balances, {len(drifted)} drifted")
        return drifted

    @staticmethod
    @wraps_storage_errors("loyalty.award_manual")
    async def award_manual(
        session: AsyncSession,
        username: str,
        points: int,
        description: Optional[str] = None,
    ) -> LedgerResult:
        """
        Admin grant by exact username ('@' and case ignored)

        Positive points -> earn entry.
        Negative points -> ledger-only debit that bypasses the balance guard,
        so the cache may go negative (admin correction).
        """
        if points == 0:
            return LedgerResult(error=EngineErrorKind.INVALID_AMOUNT)

        user = await crud.get_user_by_username(session, username)
        if not user:
            logger.info(f"Manual award: user @{username} not found")
            return LedgerResult(error=EngineErrorKind.USER_NOT_FOUND)

        if points > 0:
            return await LoyaltyService.earn(
                session,
                user.id,
                points,
                description=description or "Начислено администратором",
            )

        try:
            balance = await crud.add_loyalty_points(session, user.id, points)
            entry = await crud.add_ledger_entry(
                session,
                user_id=user.id,
                transaction_type=LoyaltyTransactionType.SPEND.value,
                points=points,
                description=description or "Списано администратором",
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.warning(f"Admin debit: {points} points from @{user.username}, balance {balance}")
        return LedgerResult(user_id=user.id, transaction_id=entry.id, points=points, balance=balance)

    @staticmethod
    async def get_balance(session: AsyncSession, user_id: str) -> int:
        return await crud.get_cached_balance(session, user_id) or 0

    @staticmethod
    async def get_history(
        session: AsyncSession,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LoyaltyTransaction]:
        """Ledger entries, newest first"""
        return await crud.get_ledger_entries(session, user_id, limit=limit, offset=offset)

    @staticmethod
    async def get_stats(session: AsyncSession, user_id: str) -> Dict:
        """
        Loyalty statistics for profile screen

        Returns:
            Dict with total_points, total_earned, total_spent,
            total_referrals, level, points_to_next_level

            total_spent is the sum of negative ledger deltas, so it is <= 0
            (same sign the Mini App profile screen expects).
        """
        stmt = select(
            func.coalesce(
                func.sum(case((LoyaltyTransaction.points > 0, LoyaltyTransaction.points), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((LoyaltyTransaction.points < 0, LoyaltyTransaction.points), else_=0)), 0
            ),
        ).where(LoyaltyTransaction.user_id == user_id)
        earned, spent = (await session.execute(stmt)).one()

        total_points = await crud.get_cached_balance(session, user_id) or 0
        level, points_to_next = get_loyalty_level(total_points)

        return {
            "total_points": total_points,
            "total_earned": int(earned),
            "total_spent": int(spent),
            "total_referrals": await crud.count_completed_referrals(session, user_id),
            "level": level,
            "points_to_next_level": points_to_next,
        }
