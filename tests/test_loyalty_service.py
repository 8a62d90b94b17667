"""
Tests for loyalty points ledger
"""

import pytest

from src.core.enums import EngineErrorKind, LoyaltyTransactionType
from src.database import crud
from src.services.loyalty_service import LoyaltyService


@pytest.mark.asyncio
async def test_earn_writes_ledger_and_balance(db_session, user):
    result = await LoyaltyService.earn(db_session, user.id, 150, description="Кэшбек")

    assert result.ok
    assert result.points == 150
    assert result.balance == 150
    assert await crud.get_cached_balance(db_session, user.id) == 150

    history = await LoyaltyService.get_history(db_session, user.id)
    assert len(history) == 1
    assert history[0].type == LoyaltyTransactionType.EARN.value
    assert history[0].description == "Кэшбек"


@pytest.mark.asyncio
async def test_earn_rejects_non_positive(db_session, user):
    assert (await LoyaltyService.earn(db_session, user.id, 0)).error == EngineErrorKind.INVALID_AMOUNT
    assert (await LoyaltyService.earn(db_session, user.id, -5)).error == EngineErrorKind.INVALID_AMOUNT


@pytest.mark.asyncio
async def test_earn_unknown_user(db_session):
    result = await LoyaltyService.earn(db_session, "missing", 10)
    assert result.error == EngineErrorKind.USER_NOT_FOUND


@pytest.mark.asyncio
async def test_earn_idempotency_key(db_session, user):
    first = await LoyaltyService.earn(db_session, user.id, 50, idempotency_key="cashback:o1")
    second = await LoyaltyService.earn(db_session, user.id, 50, idempotency_key="cashback:o1")

    assert first.points == 50
    assert second.ok
    assert second.points == 0
    assert second.transaction_id == first.transaction_id
    assert await crud.get_cached_balance(db_session, user.id) == 50


@pytest.mark.asyncio
async def test_redeem_never_goes_negative(db_session, user):
    await LoyaltyService.earn(db_session, user.id, 100)

    result = await LoyaltyService.redeem(db_session, user.id, 150)

    assert result.error == EngineErrorKind.INSUFFICIENT_BALANCE
    assert result.balance == 100
    assert await crud.get_cached_balance(db_session, user.id) == 100
    assert len(await LoyaltyService.get_history(db_session, user.id)) == 1


@pytest.mark.asyncio
async def test_redeem_success(db_session, user):
    await LoyaltyService.earn(db_session, user.id, 100)

    result = await LoyaltyService.redeem(db_session, user.id, 40)

    assert result.ok
    assert result.points == -40
    assert result.balance == 60
    history = await LoyaltyService.get_history(db_session, user.id)
    assert sorted(entry.points for entry in history) == [-40, 100]


@pytest.mark.asyncio
async def test_redeem_respects_cap(db_session, user):
    await LoyaltyService.earn(db_session, user.id, 1000)

    result = await LoyaltyService.redeem(db_session, user.id, 600, max_usable_points=500)

    assert result.error == EngineErrorKind.INSUFFICIENT_BALANCE
    assert await crud.get_cached_balance(db_session, user.id) == 1000


@pytest.mark.asyncio
async def test_redeem_invalid_amount(db_session, user):
    assert (await LoyaltyService.redeem(db_session, user.id, 0)).error == EngineErrorKind.INVALID_AMOUNT


@pytest.mark.asyncio
async def test_recalculate_matches_ledger(db_session, user):
    await LoyaltyService.earn(db_session, user.id, 300)
    await LoyaltyService.redeem(db_session, user.id, 120)

    # Cache drift (e.g. manual DB edit)
    await crud.set_loyalty_points(db_session, user.id, 9999)
    await db_session.commit()

    result = await LoyaltyService.recalculate(db_session, user.id)

    assert result.ok
    assert result.previous_balance == 9999
    assert result.balance == 180
    assert result.drift == 180 - 9999
    assert await crud.get_cached_balance(db_session, user.id) == await crud.get_ledger_sum(db_session, user.id)

    again = await LoyaltyService.recalculate(db_session, user.id)
    assert again.drift == 0


@pytest.mark.asyncio
async def test_recalculate_keeps_concurrent_earn(db_session, session_maker, user, monkeypatch):
    await LoyaltyService.earn(db_session, user.id, 100)

    original = crud.lock_user_balance

    async def lock_then_earn(session, user_id):
        previous = await original(session, user_id)
        # Another request credits points between the read and the write
        async with session_maker() as other:
            assert (await LoyaltyService.earn(other, user_id, 50, description="Кэшбек")).ok
        return previous

    monkeypatch.setattr(crud, "lock_user_balance", lock_then_earn)

    result = await LoyaltyService.recalculate(db_session, user.id)

    assert result.ok
    assert result.previous_balance == 100
    assert result.balance == 150
    assert await crud.get_cached_balance(db_session, user.id) == 150
    assert await crud.get_ledger_sum(db_session, user.id) == 150


@pytest.mark.asyncio
async def test_recalculate_unknown_user(db_session):
    result = await LoyaltyService.recalculate(db_session, "missing")
    assert result.error == EngineErrorKind.USER_NOT_FOUND


@pytest.mark.asyncio
async def test_racing_redeems_never_overdraw(db_session, session_maker, user, monkeypatch):
    await LoyaltyService.earn(db_session, user.id, 100)

    original = crud.spend_loyalty_points
    rival_results = []

    async def spend_after_rival(session, user_id, points):
        if session is db_session and not rival_results:
            # Second checkout of the same user wins the race
            async with session_maker() as rival:
                rival_results.append(await LoyaltyService.redeem(rival, user_id, 80))
        return await original(session, user_id, points)

    monkeypatch.setattr(crud, "spend_loyalty_points", spend_after_rival)

    result = await LoyaltyService.redeem(db_session, user.id, 80)

    assert rival_results[0].ok
    assert result.error == EngineErrorKind.INSUFFICIENT_BALANCE
    assert result.balance == 20
    assert await crud.get_cached_balance(db_session, user.id) == 20
    assert await crud.get_ledger_sum(db_session, user.id) == 20


@pytest.mark.asyncio
async def test_recalculate_all_reports_drifted_users(db_session, user, other_user):
    await LoyaltyService.earn(db_session, user.id, 10)
    await LoyaltyService.earn(db_session, other_user.id, 20)
    await crud.set_loyalty_points(db_session, other_user.id, 0)
    await db_session.commit()

    drifted = await LoyaltyService.recalculate_all(db_session)

    assert drifted == {other_user.id: 20}


@pytest.mark.asyncio
async def test_award_manual_by_username(db_session, user):
    result = await LoyaltyService.award_manual(db_session, "@buyer", 500, "Конкурс")

    assert result.ok
    assert result.user_id == user.id
    assert await crud.get_cached_balance(db_session, user.id) == 500


@pytest.mark.asyncio
async def test_award_manual_negative_may_overdraw(db_session, user):
    await LoyaltyService.earn(db_session, user.id, 100)

    result = await LoyaltyService.award_manual(db_session, "buyer", -300)

    assert result.ok
    assert result.points == -300
    assert await crud.get_cached_balance(db_session, user.id) == -200
    assert await crud.get_ledger_sum(db_session, user.id) == -200


@pytest.mark.asyncio
async def test_award_manual_rejections(db_session, user):
    assert (await LoyaltyService.award_manual(db_session, "buyer", 0)).error == EngineErrorKind.INVALID_AMOUNT
    assert (await LoyaltyService.award_manual(db_session, "buy", 10)).error == EngineErrorKind.USER_NOT_FOUND


@pytest.mark.asyncio
async def test_get_stats(db_session, user):
    await LoyaltyService.earn(db_session, user.id, 600)
    await LoyaltyService.redeem(db_session, user.id, 50)

    stats = await LoyaltyService.get_stats(db_session, user.id)

    assert stats["total_points"] == 550
    assert stats["total_earned"] == 600
    assert stats["total_spent"] == -50
    assert stats["total_referrals"] == 0
    assert stats["level"] == "Bronze"
    assert stats["points_to_next_level"] == 1450
