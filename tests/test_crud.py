"""
Unit tests for CRUD operations
"""

import pytest

from src.database import crud
from src.database.crud import (
    create_user,
    get_user_by_telegram_id,
    get_user_by_username,
    get_or_create_user,
    normalize_username,
    normalize_code,
)


def test_normalize_username():
    assert normalize_username("@Ivan_Fit ") == "ivan_fit"
    assert normalize_username("ivan") == "ivan"
    assert normalize_username("@") is None
    assert normalize_username(None) is None


def test_normalize_code():
    assert normalize_code("  save20 ") == "SAVE20"


@pytest.mark.asyncio
async def test_create_user(db_session):
    """Test user creation"""
    user = await create_user(
        session=db_session,
        telegram_id=123456789,
        username="@Test_User",
        first_name="Test",
        last_name="User",
    )

    assert user.telegram_id == 123456789
    assert user.username == "Test_User"
    assert user.username_normalized == "test_user"
    assert user.loyalty_points == 0
    assert user.referral_code is None
    assert not user.is_admin


@pytest.mark.asyncio
async def test_get_user_by_telegram_id(db_session):
    created_user = await create_user(session=db_session, telegram_id=123456789, username="test_user")

    user = await get_user_by_telegram_id(db_session, 123456789)
    assert user is not None
    assert user.id == created_user.id

    assert await get_user_by_telegram_id(db_session, 999999999) is None


@pytest.mark.asyncio
async def test_get_user_by_username_is_exact(db_session):
    """Lookup is case-insensitive but never a substring match"""
    await create_user(db_session, telegram_id=1, username="Ivan")
    await create_user(db_session, telegram_id=2, username="Ivanov")

    user = await get_user_by_username(db_session, "@IVAN")
    assert user is not None
    assert user.telegram_id == 1

    assert await get_user_by_username(db_session, "iva") is None


@pytest.mark.asyncio
async def test_get_or_create_user(db_session):
    user1, created1 = await get_or_create_user(
        session=db_session, telegram_id=123456789, username="new_user"
    )
    assert created1 is True

    user2, created2 = await get_or_create_user(
        session=db_session, telegram_id=123456789, username="Renamed"
    )
    assert created2 is False
    assert user2.id == user1.id
    assert user2.username_normalized == "renamed"


@pytest.mark.asyncio
async def test_get_or_create_user_releases_stale_username(db_session):
    """Username moved to another Telegram account"""
    old, _ = await get_or_create_user(db_session, telegram_id=1, username="coach")
    new, created = await get_or_create_user(db_session, telegram_id=2, username="Coach")

    assert created is True
    await db_session.refresh(old)
    assert old.username_normalized is None
    assert (await get_user_by_username(db_session, "coach")).id == new.id


@pytest.mark.asyncio
async def test_spend_loyalty_points_is_conditional(db_session, user):
    assert await crud.add_loyalty_points(db_session, user.id, 100) == 100
    assert await crud.spend_loyalty_points(db_session, user.id, 150) is None
    assert await crud.spend_loyalty_points(db_session, user.id, 60) == 40
    await db_session.commit()

    assert await crud.get_cached_balance(db_session, user.id) == 40


@pytest.mark.asyncio
async def test_add_loyalty_points_unknown_user(db_session):
    assert await crud.add_loyalty_points(db_session, "missing", 10) is None
    assert await crud.get_cached_balance(db_session, "missing") is None


@pytest.mark.asyncio
async def test_increment_promo_usage_respects_cap(db_session):
    from src.database.models import PromoCode

    promo = PromoCode(code="ONCE", discount_percent=10, max_uses=1)
    db_session.add(promo)
    await db_session.commit()

    assert await crud.increment_promo_usage(db_session, promo.id) == 1
    assert await crud.increment_promo_usage(db_session, promo.id) is None
    await db_session.commit()


@pytest.mark.asyncio
async def test_is_code_taken(db_session, user):
    user.referral_code = "ANNA1234"
    await db_session.commit()

    assert await crud.is_code_taken(db_session, "anna1234")
    assert not await crud.is_code_taken(db_session, "FREE0000")


def test_generate_order_number_format():
    number = crud.generate_order_number()
    prefix, stamp, suffix = number.split("-")
    assert prefix == "KV"
    assert len(stamp) == 10 and stamp.isdigit()
    assert 1000 <= int(suffix) <= 9999
