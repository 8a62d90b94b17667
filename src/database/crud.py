"""
CRUD operations for KAVARA Mini App backend

Async database operations using SQLAlchemy 2.0.

Functions named add_*/increment_*/spend_* issue single atomic UPDATE
statements and do NOT commit - the calling service owns the transaction.
"""

import logging
import random
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.database.models import (
    User,
    PromoCode,
    Trainer,
    Order,
    LoyaltyTransaction,
    Referral,
    Favorite,
    Box,
    Product,
    ReminderSettings,
    SentReminder,
)
from src.core.enums import OrderStatus
from src.utils.dates import utcnow

logger = logging.getLogger(__name__)


def normalize_username(username: Optional[str]) -> Optional[str]:
    """'@Ivan_Fit ' -> 'ivan_fit' (None for empty)"""
    if not username:
        return None
    normalized = username.strip().lstrip("@").strip().lower()
    return normalized or None


def normalize_code(code: str) -> str:
    return code.strip().upper()


# ===========================
# USER OPERATIONS
# ===========================


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
    return await session.get(User, user_id)


async def get_user_by_telegram_id(
    session: AsyncSession, telegram_id: int
) -> Optional[User]:
    stmt = select(User).where(User.telegram_id == telegram_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> Optional[User]:
    """
    Exact, case-insensitive lookup by username ('@' prefix allowed)

    Never a substring match - manual grants must hit exactly one user.
    """
    normalized = normalize_username(username)
    if not normalized:
        return None
    stmt = select(User).where(User.username_normalized == normalized)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_telegram_id_or_username(
    session: AsyncSession, identifier: str
) -> Optional[User]:
    """Resolve admin input: numeric Telegram ID or username"""
    identifier = identifier.strip()
    if identifier.isdigit():
        user = await get_user_by_telegram_id(session, int(identifier))
        if user:
            return user
    return await get_user_by_username(session, identifier)


async def get_user_by_referral_code(session: AsyncSession, code: str) -> Optional[User]:
    stmt = select(User).where(User.referral_code == normalize_code(code))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    telegram_id: Optional[int] = None,
    username: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    is_admin: bool = False,
) -> User:
    """Create new user"""
    user = User(
        telegram_id=telegram_id,
        username=username.lstrip("@") if username else None,
        username_normalized=normalize_username(username),
        first_name=first_name,
        last_name=last_name,
        is_admin=is_admin,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    logger.info(f"User created: {telegram_id} (@{username})")
    return user


async def _release_username(session: AsyncSession, normalized: str, keep_user_id: str) -> None:
    """Telegram usernames are unique at any moment - a stale holder loses it"""
    await session.execute(
        update(User)
        .where(User.username_normalized == normalized, User.id != keep_user_id)
        .values(username_normalized=None)
    )


async def get_or_create_user(
    session: AsyncSession,
    telegram_id: int,
    username: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> tuple[User, bool]:
    """
    Get existing user or create new one, syncing Telegram profile fields

    Returns:
        Tuple of (User model, is_created)
    """
    user = await get_user_by_telegram_id(session, telegram_id)

    if user:
        normalized = normalize_username(username)
        if normalized and user.username_normalized != normalized:
            await _release_username(session, normalized, user.id)
            user.username = username.lstrip("@")
            user.username_normalized = normalized
        if first_name and user.first_name != first_name:
            user.first_name = first_name
        if last_name and user.last_name != last_name:
            user.last_name = last_name
        await session.commit()
        return user, False

    normalized = normalize_username(username)
    if normalized:
        holder = await get_user_by_username(session, normalized)
        if holder:
            holder.username_normalized = None
            await session.flush()

    user = await create_user(
        session,
        telegram_id=telegram_id,
        username=username,
        first_name=first_name,
        last_name=last_name,
    )
    return user, True


async def get_all_users(
    session: AsyncSession, limit: int = 100, offset: int = 0
) -> List[User]:
    stmt = select(User).order_by(User.created_at.desc()).limit(limit).offset(offset)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_all_user_ids(session: AsyncSession) -> List[str]:
    result = await session.execute(select(User.id))
    return list(result.scalars().all())


async def add_loyalty_points(session: AsyncSession, user_id: str, delta: int) -> Optional[int]:
    """
    Atomically shift cached balance by delta (may be negative)

    Returns:
        New balance, or None if user does not exist
    """
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(loyalty_points=User.loyalty_points + delta)
        .returning(User.loyalty_points)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def spend_loyalty_points(session: AsyncSession, user_id: str, points: int) -> Optional[int]:
    """
    Conditional decrement - only when balance covers the amount

    Returns:
        New balance, or None if balance was insufficient
    """
    stmt = (
        update(User)
        .where(User.id == user_id, User.loyalty_points >= points)
        .values(loyalty_points=User.loyalty_points - points)
        .returning(User.loyalty_points)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def set_loyalty_points(session: AsyncSession, user_id: str, balance: int) -> None:
    await session.execute(
        update(User)
        .where(User.id == user_id)
        .values(loyalty_points=balance)
        .execution_options(synchronize_session=False)
    )


async def lock_user_balance(session: AsyncSession, user_id: str) -> Optional[int]:
    """Read cached balance holding the user row lock until commit"""
    stmt = select(User.loyalty_points).where(User.id == user_id).with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def sync_loyalty_points_with_ledger(session: AsyncSession, user_id: str) -> Optional[int]:
    """
    cache := sum(ledger) in a single UPDATE

    The sum is a correlated subquery of the same statement, so an entry
    committed by a concurrent earn/redeem is never lost between read and write.

    Returns:
        New balance, or None if user does not exist
    """
    ledger_sum = (
        select(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
        .where(LoyaltyTransaction.user_id == user_id)
        .scalar_subquery()
    )
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(loyalty_points=ledger_sum)
        .returning(User.loyalty_points)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_cached_balance(session: AsyncSession, user_id: str) -> Optional[int]:
    """Read balance straight from the row (bypasses identity map)"""
    result = await session.execute(select(User.loyalty_points).where(User.id == user_id))
    return result.scalar_one_or_none()


# ===========================
# LOYALTY LEDGER
# ===========================


async def add_ledger_entry(
    session: AsyncSession,
    user_id: str,
    transaction_type: str,
    points: int,
    description: str,
    order_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> LoyaltyTransaction:
    """Append ledger entry (flush only, caller commits)"""
    entry = LoyaltyTransaction(
        user_id=user_id,
        order_id=order_id,
        type=transaction_type,
        points=points,
        description=description,
        idempotency_key=idempotency_key,
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_ledger_entry_by_key(
    session: AsyncSession, idempotency_key: str
) -> Optional[LoyaltyTransaction]:
    stmt = select(LoyaltyTransaction).where(
        LoyaltyTransaction.idempotency_key == idempotency_key
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_ledger_sum(session: AsyncSession, user_id: str) -> int:
    stmt = select(func.coalesce(func.sum(LoyaltyTransaction.points), 0)).where(
        LoyaltyTransaction.user_id == user_id
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def get_ledger_entries(
    session: AsyncSession, user_id: str, limit: int = 50, offset: int = 0
) -> List[LoyaltyTransaction]:
    stmt = (
        select(LoyaltyTransaction)
        .where(LoyaltyTransaction.user_id == user_id)
        .order_by(LoyaltyTransaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# PROMO CODES & TRAINERS
# ===========================


async def get_promo_code(session: AsyncSession, promo_code_id: str) -> Optional[PromoCode]:
    """Fresh row with trainer loaded (used_count is changed by bare UPDATEs)"""
    return await session.get(
        PromoCode,
        promo_code_id,
        options=[selectinload(PromoCode.trainer)],
        populate_existing=True,
    )


async def get_promo_code_by_code(session: AsyncSession, code: str) -> Optional[PromoCode]:
    stmt = (
        select(PromoCode)
        .where(PromoCode.code == normalize_code(code))
        .options(selectinload(PromoCode.trainer))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def is_code_taken(session: AsyncSession, code: str) -> bool:
    """Code collides with a user referral code or any promo code"""
    code = normalize_code(code)
    users = await session.execute(select(User.id).where(User.referral_code == code))
    if users.first() is not None:
        return True
    promos = await session.execute(select(PromoCode.id).where(PromoCode.code == code))
    return promos.first() is not None


async def increment_promo_usage(session: AsyncSession, promo_code_id: str) -> Optional[int]:
    """
    Conditional used_count increment

    Row matches only while the code is still under its cap, so two
    concurrent finalizations can never push used_count past max_uses.

    Returns:
        New used_count, or None if the cap was reached
    """
    stmt = (
        update(PromoCode)
        .where(
            PromoCode.id == promo_code_id,
            or_(PromoCode.max_uses.is_(None), PromoCode.used_count < PromoCode.max_uses),
        )
        .values(used_count=PromoCode.used_count + 1)
        .returning(PromoCode.used_count)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_trainer(session: AsyncSession, trainer_id: str) -> Optional[Trainer]:
    return await session.get(Trainer, trainer_id)


async def increment_trainer_stats(session: AsyncSession, trainer_id: str, earnings: int) -> None:
    await session.execute(
        update(Trainer)
        .where(Trainer.id == trainer_id)
        .values(
            total_orders=Trainer.total_orders + 1,
            total_earnings=Trainer.total_earnings + earnings,
        )
        .execution_options(synchronize_session=False)
    )


# ===========================
# ORDERS
# ===========================


def generate_order_number() -> str:
    """KV-<yymmddHHMM>-<4 random digits>"""
    return f"KV-{utcnow().strftime('%y%m%d%H%M')}-{random.randint(1000, 9999)}"


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
    return await session.get(Order, order_id, populate_existing=True)


async def get_order_by_number(session: AsyncSession, order_number: str) -> Optional[Order]:
    result = await session.execute(select(Order).where(Order.order_number == order_number))
    return result.scalar_one_or_none()


async def get_user_orders(
    session: AsyncSession, user_id: str, limit: int = 50
) -> List[Order]:
    stmt = (
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_paid_orders(session: AsyncSession, user_id: str) -> int:
    stmt = select(func.count(Order.id)).where(
        Order.user_id == user_id, Order.status == OrderStatus.PAID.value
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def transition_order_to_paid(
    session: AsyncSession, order_id: str, payment_id: Optional[str] = None
) -> bool:
    """
    pending -> paid, exactly once

    Returns:
        True only for the caller that won the transition
    """
    values = {"status": OrderStatus.PAID.value, "paid_at": utcnow()}
    if payment_id:
        values["payment_id"] = payment_id
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def get_pending_orders_older_than(
    session: AsyncSession, cutoff: datetime
) -> List[Order]:
    stmt = (
        select(Order)
        .where(
            Order.status == OrderStatus.PENDING.value,
            Order.created_at <= cutoff,
            Order.user_id.is_not(None),
        )
        .options(selectinload(Order.user))
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# REFERRALS
# ===========================


async def get_referral(session: AsyncSession, referral_id: str) -> Optional[Referral]:
    return await session.get(Referral, referral_id)


async def get_referral_for_referred(
    session: AsyncSession, referred_id: str
) -> Optional[Referral]:
    stmt = (
        select(Referral)
        .where(Referral.referred_id == referred_id)
        .order_by(Referral.created_at.asc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def count_completed_referrals(session: AsyncSession, referrer_id: str) -> int:
    stmt = select(func.count(Referral.id)).where(
        Referral.referrer_id == referrer_id, Referral.bonus_awarded.is_(True)
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


# ===========================
# FAVORITES
# ===========================


async def get_favorite(
    session: AsyncSession,
    user_id: str,
    box_id: Optional[str] = None,
    product_id: Optional[str] = None,
) -> Optional[Favorite]:
    stmt = select(Favorite).where(Favorite.user_id == user_id)
    if box_id:
        stmt = stmt.where(Favorite.box_id == box_id)
    else:
        stmt = stmt.where(Favorite.product_id == product_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_favorites(session: AsyncSession, user_id: str) -> List[Favorite]:
    stmt = (
        select(Favorite)
        .where(Favorite.user_id == user_id)
        .options(selectinload(Favorite.box), selectinload(Favorite.product))
        .order_by(Favorite.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_favorite(
    session: AsyncSession,
    user_id: str,
    box_id: Optional[str] = None,
    product_id: Optional[str] = None,
) -> bool:
    stmt = delete(Favorite).where(Favorite.user_id == user_id)
    if box_id:
        stmt = stmt.where(Favorite.box_id == box_id)
    else:
        stmt = stmt.where(Favorite.product_id == product_id)
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount > 0


async def get_box(session: AsyncSession, box_id: str) -> Optional[Box]:
    return await session.get(Box, box_id)


async def get_product(session: AsyncSession, product_id: str) -> Optional[Product]:
    return await session.get(Product, product_id)


async def get_boxes(
    session: AsyncSession, category: Optional[str] = None, available_only: bool = False
) -> List[Box]:
    """Boxes, newest first"""
    stmt = select(Box).order_by(Box.created_at.desc())
    if category:
        stmt = stmt.where(Box.category == category)
    if available_only:
        stmt = stmt.where(Box.is_available.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_products(
    session: AsyncSession, category: Optional[str] = None, available_only: bool = False
) -> List[Product]:
    """Products, newest first"""
    stmt = select(Product).order_by(Product.created_at.desc())
    if category:
        stmt = stmt.where(Product.category == category)
    if available_only:
        stmt = stmt.where(Product.is_available.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# REMINDERS
# ===========================


async def get_reminder_settings(
    session: AsyncSession, reminder_type: str
) -> Optional[ReminderSettings]:
    stmt = select(ReminderSettings).where(ReminderSettings.type == reminder_type)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_sent_reminders_for_order(
    session: AsyncSession, order_id: str, reminder_type: str
) -> List[SentReminder]:
    stmt = (
        select(SentReminder)
        .where(SentReminder.order_id == order_id, SentReminder.type == reminder_type)
        .order_by(SentReminder.sent_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
