"""
Tests for referral codes, links and the one-time referral bonus
"""

import pytest
from sqlalchemy import select

from src.core.enums import EngineErrorKind, LoyaltyTransactionType, PromoCodeType, ReferralStatus
from src.database import crud
from src.database.models import LoyaltyTransaction
from src.services.referral_service import ReferralService
from config.loyalty_config import REFERRAL_BONUS_POINTS, REFERRAL_REWARD_PERCENT


# ============================================================================
# REFERRAL CODE TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_generate_referral_code(db_session, user):
    code = await ReferralService.generate_referral_code(db_session, user.id)

    assert code.startswith("BUYER")
    assert len(code) == len("BUYER") + 4
    assert code[len("BUYER"):].isdigit()

    promo = await crud.get_promo_code_by_code(db_session, code)
    assert promo.type == PromoCodeType.REFERRAL.value
    assert promo.owner_id == user.id
    assert promo.reward_percent == REFERRAL_REWARD_PERCENT


@pytest.mark.asyncio
async def test_generate_referral_code_is_stable(db_session, user):
    first = await ReferralService.generate_referral_code(db_session, user.id)
    second = await ReferralService.generate_referral_code(db_session, user.id)

    assert first == second


@pytest.mark.asyncio
async def test_generate_referral_code_without_username(db_session):
    anonymous = await crud.create_user(db_session, telegram_id=333)

    code = await ReferralService.generate_referral_code(db_session, anonymous.id)
    assert code.startswith("USER")


@pytest.mark.asyncio
async def test_generate_referral_code_fallback(db_session, user, monkeypatch):
    """Every attempt collides -> KAVARA + timestamp digits"""

    async def always_taken(session, code):
        return True

    monkeypatch.setattr(crud, "is_code_taken", always_taken)

    code = await ReferralService.generate_referral_code(db_session, user.id)
    assert code.startswith("KAVARA")
    assert len(code) == len("KAVARA") + 6


@pytest.mark.asyncio
async def test_generate_referral_code_unknown_user(db_session):
    assert await ReferralService.generate_referral_code(db_session, "missing") is None


# ============================================================================
# REFERRAL LINKS
# ============================================================================


@pytest.mark.asyncio
async def test_register_referral(db_session, user, other_user):
    referral = await ReferralService.register_referral(db_session, other_user.id, user.id)

    assert referral is not None
    assert referral.status == ReferralStatus.PENDING.value
    assert referral.bonus_awarded is False
    assert user.referred_by == other_user.id


@pytest.mark.asyncio
async def test_self_referral_blocked(db_session, user):
    assert await ReferralService.register_referral(db_session, user.id, user.id) is None


@pytest.mark.asyncio
async def test_user_referred_only_once(db_session, user, other_user):
    third = await crud.create_user(db_session, telegram_id=333, username="third")

    assert await ReferralService.register_referral(db_session, other_user.id, user.id)
    assert await ReferralService.register_referral(db_session, third.id, user.id) is None
    assert await ReferralService.register_referral(db_session, other_user.id, user.id) is None


@pytest.mark.asyncio
async def test_register_by_code(db_session, user, other_user):
    code = await ReferralService.generate_referral_code(db_session, other_user.id)

    referral = await ReferralService.register_by_code(db_session, code.lower(), user.id)

    assert referral is not None
    assert referral.referrer_id == other_user.id
    assert await ReferralService.register_by_code(db_session, "NOSUCHCODE", user.id) is None


# ============================================================================
# REFERRAL BONUS
# ============================================================================


@pytest.mark.asyncio
async def test_complete_referral_credits_once(db_session, user, other_user):
    referral = await ReferralService.register_referral(db_session, other_user.id, user.id)

    first = await ReferralService.complete_referral(db_session, referral.id)
    second = await ReferralService.complete_referral(db_session, referral.id)

    assert first.ok and first.bonus_awarded_now
    assert first.points == REFERRAL_BONUS_POINTS
    assert second.ok and not second.bonus_awarded_now

    assert await crud.get_cached_balance(db_session, other_user.id) == REFERRAL_BONUS_POINTS
    entries = (
        await db_session.execute(
            select(LoyaltyTransaction).where(
                LoyaltyTransaction.type == LoyaltyTransactionType.REFERRAL_BONUS.value
            )
        )
    ).scalars().all()
    assert len(entries) == 1
    assert entries[0].user_id == other_user.id

    await db_session.refresh(referral)
    assert referral.status == ReferralStatus.COMPLETED.value
    assert referral.bonus_awarded is True
    assert referral.completed_at is not None


@pytest.mark.asyncio
async def test_complete_unknown_referral(db_session):
    result = await ReferralService.complete_referral(db_session, "missing")
    assert result.error == EngineErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_complete_for_referred_user(db_session, user, other_user):
    assert await ReferralService.complete_for_referred_user(db_session, user.id) is None

    await ReferralService.register_referral(db_session, other_user.id, user.id)
    result = await ReferralService.complete_for_referred_user(db_session, user.id)

    assert result.bonus_awarded_now
    referrals = await ReferralService.get_referrals(db_session, other_user.id)
    assert [r.referred.id for r in referrals] == [user.id]
