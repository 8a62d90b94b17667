"""
Tests for trainer partners
"""

import pytest
from sqlalchemy.exc import IntegrityError

from src.core.enums import PromoCodeType
from src.database import crud
from src.services.promo_service import PromoCodeService
from src.services.trainer_service import TrainerService


@pytest.mark.asyncio
async def test_create_trainer_creates_promo_code(db_session):
    trainer = await TrainerService.create_trainer(
        db_session, "coach@gym.ru", "Coach", "coach15", gym="Iron", discount_percent=15
    )

    assert trainer.promo_code == "COACH15"
    assert trainer.total_orders == 0
    assert trainer.total_earnings == 0

    promo = await crud.get_promo_code_by_code(db_session, "COACH15")
    assert promo.type == PromoCodeType.TRAINER.value
    assert promo.trainer_id == trainer.id
    assert promo.discount_percent == 15

    result = await PromoCodeService.validate(db_session, "coach15", 2000)
    assert result.discount_amount == 300
    assert result.trainer_name == "Coach"


@pytest.mark.asyncio
async def test_create_trainer_duplicate_email(db_session):
    await TrainerService.create_trainer(db_session, "coach@gym.ru", "Coach", "COACH1")

    with pytest.raises(IntegrityError):
        await TrainerService.create_trainer(db_session, "coach@gym.ru", "Other", "COACH2")


@pytest.mark.asyncio
async def test_create_trainer_rejects_bad_percent(db_session):
    with pytest.raises(ValueError):
        await TrainerService.create_trainer(db_session, "a@b.ru", "A", "A1", commission_percent=120)


@pytest.mark.asyncio
async def test_update_discount_syncs_promo_code(db_session):
    trainer = await TrainerService.create_trainer(db_session, "coach@gym.ru", "Coach", "COACH")

    updated = await TrainerService.update_discount(db_session, trainer.id, 20)

    assert updated.discount_percent == 20
    promo = await crud.get_promo_code_by_code(db_session, "COACH")
    assert promo.discount_percent == 20


@pytest.mark.asyncio
async def test_record_order_accumulates(db_session):
    trainer = await TrainerService.create_trainer(db_session, "coach@gym.ru", "Coach", "COACH")

    await TrainerService.record_order(db_session, trainer.id, 200)
    await TrainerService.record_order(db_session, trainer.id, 150)
    await db_session.commit()

    await db_session.refresh(trainer)
    assert trainer.total_orders == 2
    assert trainer.total_earnings == 350


@pytest.mark.asyncio
async def test_list_trainers_active_only(db_session):
    active = await TrainerService.create_trainer(db_session, "a@gym.ru", "A", "CODEA")
    inactive = await TrainerService.create_trainer(db_session, "b@gym.ru", "B", "CODEB")
    await TrainerService.set_active(db_session, inactive.id, False)

    assert [t.id for t in await TrainerService.list_trainers(db_session, active_only=True)] == [active.id]
    assert len(await TrainerService.list_trainers(db_session)) == 2
