# coding: utf-8
"""
Admin API Endpoints

Promo codes, trainers, catalog, broadcasts, loyalty repairs
and manual order finalisation.
All routes require the admin token (see verify_admin_token).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from aiogram import Bot
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.api.auth import verify_admin_token
from src.api.catalog import BoxResponse, ProductResponse
from src.api.errors import raise_for_result
from src.core.enums import PromoCodeType
from src.database.engine import get_session
from src.services.broadcast_service import BroadcastService
from src.services.catalog_service import CatalogService
from src.services.loyalty_service import LoyaltyService
from src.services.order_service import OrderService
from src.services.promo_service import PromoCodeService
from src.services.referral_service import ReferralService
from src.services.reminder_service import ReminderService
from src.services.trainer_service import TrainerService
from config.config import BOT_TOKEN

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_admin_token)],
)


# ===========================
# REQUEST / RESPONSE MODELS
# ===========================


class PromoCodeCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    type: PromoCodeType = PromoCodeType.GENERAL
    discount_percent: float = Field(0, ge=0, le=100)
    discount_amount: Optional[int] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    trainer_id: Optional[str] = None
    owner_id: Optional[str] = None
    points_per_use: int = Field(0, ge=0)
    reward_percent: float = Field(0, ge=0, le=100)
    partner_name: Optional[str] = None
    partner_contact: Optional[str] = None


class PromoCodeResponse(BaseModel):
    id: str
    code: str
    type: str
    discount_percent: float
    discount_amount: Optional[int]
    is_active: bool
    max_uses: Optional[int]
    used_count: int
    expires_at: Optional[datetime]
    trainer_id: Optional[str]
    owner_id: Optional[str]
    points_per_use: int
    reward_percent: float

    model_config = {"from_attributes": True}


class ActiveRequest(BaseModel):
    is_active: bool


class TrainerCreateRequest(BaseModel):
    email: str
    name: str
    promo_code: str = Field(..., min_length=1, max_length=32)
    phone: Optional[str] = None
    gym: Optional[str] = None
    discount_percent: float = Field(15, ge=0, le=100)
    commission_percent: float = Field(10, ge=0, le=100)


class TrainerResponse(BaseModel):
    id: str
    email: str
    name: str
    promo_code: str
    discount_percent: float
    commission_percent: float
    is_active: bool
    total_orders: int
    total_earnings: int

    model_config = {"from_attributes": True}


class DiscountRequest(BaseModel):
    discount_percent: float = Field(..., ge=0, le=100)


class AwardRequest(BaseModel):
    username: str
    points: int
    description: Optional[str] = None


class MarkPaidRequest(BaseModel):
    payment_id: Optional[str] = None


class ReminderSettingsRequest(BaseModel):
    enabled: Optional[bool] = None
    delay_hours: Optional[int] = Field(None, ge=1)
    message_template: Optional[str] = None
    max_reminders: Optional[int] = Field(None, ge=1)
    min_interval_hours: Optional[int] = Field(None, ge=1)


class CatalogItemCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: int = Field(..., ge=0)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = None
    is_available: bool = True


class CatalogItemUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = None
    is_available: Optional[bool] = None


class AvailabilityRequest(BaseModel):
    is_available: bool


class BroadcastButton(BaseModel):
    label: str = Field(..., min_length=1, max_length=64)
    start_app_param: str = Field(..., min_length=1, max_length=64)


class BroadcastCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    buttons: List[BroadcastButton] = []


class BroadcastUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    message: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = None
    buttons: Optional[List[BroadcastButton]] = None


# ===========================
# PROMO CODES
# ===========================


@router.post("/promo-codes", response_model=PromoCodeResponse, status_code=201)
async def create_promo_code(
    data: PromoCodeCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    try:
        promo = await PromoCodeService.create_promo_code(
            session,
            code=data.code,
            discount_percent=data.discount_percent,
            discount_amount=data.discount_amount,
            promo_type=data.type.value,
            max_uses=data.max_uses,
            expires_at=data.expires_at,
            trainer_id=data.trainer_id,
            owner_id=data.owner_id,
            points_per_use=data.points_per_use,
            reward_percent=data.reward_percent,
            partner_name=data.partner_name,
            partner_contact=data.partner_contact,
        )
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Promo code already exists")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return PromoCodeResponse.model_validate(promo)


@router.get("/promo-codes", response_model=List[PromoCodeResponse])
async def list_promo_codes(
    type: Optional[PromoCodeType] = None,
    active_only: bool = False,
    session: AsyncSession = Depends(get_session),
):
    promos = await PromoCodeService.list_promo_codes(
        session, promo_type=type.value if type else None, active_only=active_only
    )
    return [PromoCodeResponse.model_validate(promo) for promo in promos]


@router.patch("/promo-codes/{promo_code_id}/active", response_model=PromoCodeResponse)
async def set_promo_code_active(
    promo_code_id: str,
    data: ActiveRequest,
    session: AsyncSession = Depends(get_session),
):
    promo = await PromoCodeService.set_active(session, promo_code_id, data.is_active)
    if not promo:
        raise HTTPException(status_code=404, detail="Promo code not found")
    return PromoCodeResponse.model_validate(promo)


@router.get("/promo-codes/{promo_code_id}/stats")
async def get_promo_code_stats(
    promo_code_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    stats = await PromoCodeService.get_usage_stats(session, promo_code_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Promo code not found")
    return stats


@router.get("/promo-codes/{promo_code_id}/orders")
async def get_promo_code_orders(
    promo_code_id: str,
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    orders = await PromoCodeService.get_orders_for_code(session, promo_code_id)
    return [
        {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "total_price": order.total_price,
            "discount_amount": order.discount_amount,
            "created_at": order.created_at.isoformat(),
        }
        for order in orders
    ]


# ===========================
# TRAINERS
# ===========================


@router.post("/trainers", response_model=TrainerResponse, status_code=201)
async def create_trainer(
    data: TrainerCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    try:
        trainer = await TrainerService.create_trainer(session, **data.model_dump())
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Trainer email or promo code already exists")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TrainerResponse.model_validate(trainer)


@router.get("/trainers", response_model=List[TrainerResponse])
async def list_trainers(
    active_only: bool = False,
    session: AsyncSession = Depends(get_session),
):
    trainers = await TrainerService.list_trainers(session, active_only=active_only)
    return [TrainerResponse.model_validate(trainer) for trainer in trainers]


@router.patch("/trainers/{trainer_id}/discount", response_model=TrainerResponse)
async def update_trainer_discount(
    trainer_id: str,
    data: DiscountRequest,
    session: AsyncSession = Depends(get_session),
):
    trainer = await TrainerService.update_discount(session, trainer_id, data.discount_percent)
    if not trainer:
        raise HTTPException(status_code=404, detail="Trainer not found")
    return TrainerResponse.model_validate(trainer)


# ===========================
# LOYALTY
# ===========================


@router.post("/loyalty/award")
async def award_points(
    data: AwardRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    result = await LoyaltyService.award_manual(session, data.username, data.points, data.description)
    raise_for_result(result)
    logger.info(f"Admin API awarded {data.points} points to @{data.username}")
    return {"user_id": result.user_id, "points": result.points, "balance": result.balance}


@router.post("/loyalty/recalculate/{user_id}")
async def recalculate_balance(
    user_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    result = await LoyaltyService.recalculate(session, user_id)
    raise_for_result(result)
    return {
        "user_id": user_id,
        "previous_balance": result.previous_balance,
        "balance": result.balance,
        "drift": result.drift,
    }


@router.post("/loyalty/recalculate-all")
async def recalculate_all_balances(
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    drifted = await LoyaltyService.recalculate_all(session)
    return {"drifted_users": len(drifted), "drift": drifted}


# ===========================
# ORDERS & REFERRALS
# ===========================


@router.post("/orders/{order_id}/mark-paid")
async def mark_order_paid(
    order_id: str,
    data: MarkPaidRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    result = await OrderService.mark_paid(session, order_id, data.payment_id)
    raise_for_result(result)
    return {
        "order_id": order_id,
        "newly_paid": result.newly_paid,
        "promo_error": result.promo.error.value if result.promo and result.promo.error else None,
        "referral_completed": result.referral_completed,
        "cashback_points": result.cashback_points,
    }


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    order = await OrderService.cancel_order(session, order_id)
    if not order:
        raise HTTPException(status_code=409, detail="Only pending orders can be cancelled")
    return {"order_id": order.id, "status": order.status}


@router.post("/referrals/{referral_id}/complete")
async def complete_referral(
    referral_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    result = await ReferralService.complete_referral(session, referral_id)
    raise_for_result(result)
    return {"referral_id": referral_id, "bonus_awarded_now": result.bonus_awarded_now}


# ===========================
# REMINDERS
# ===========================


@router.get("/reminders/unpaid-order")
async def get_reminder_settings(session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    settings = await ReminderService.get_or_create_settings(session)
    return _reminder_settings_dict(settings)


@router.put("/reminders/unpaid-order")
async def update_reminder_settings(
    data: ReminderSettingsRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    settings = await ReminderService.update_settings(session, **data.model_dump())
    return _reminder_settings_dict(settings)


def _reminder_settings_dict(settings) -> Dict[str, Any]:
    return {
        "type": settings.type,
        "enabled": settings.enabled,
        "delay_hours": settings.delay_hours,
        "message_template": settings.message_template,
        "max_reminders": settings.max_reminders,
        "min_interval_hours": settings.min_interval_hours,
        "sent_count": settings.sent_count,
        "converted_count": settings.converted_count,
    }


# ===========================
# CATALOG
# ===========================


@router.get("/boxes", response_model=List[BoxResponse])
async def list_all_boxes(session: AsyncSession = Depends(get_session)):
    """All boxes including unavailable ones"""
    boxes = await CatalogService.list_boxes(session, available_only=False)
    return [BoxResponse.model_validate(box) for box in boxes]


@router.post("/boxes", response_model=BoxResponse, status_code=201)
async def create_box(
    data: CatalogItemCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    box = await CatalogService.create_box(session, **data.model_dump())
    return BoxResponse.model_validate(box)


@router.patch("/boxes/{box_id}", response_model=BoxResponse)
async def update_box(
    box_id: str,
    data: CatalogItemUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    box = await CatalogService.update_box(session, box_id, **data.model_dump())
    if not box:
        raise HTTPException(status_code=404, detail="Box not found")
    return BoxResponse.model_validate(box)


@router.patch("/boxes/{box_id}/available", response_model=BoxResponse)
async def set_box_available(
    box_id: str,
    data: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
):
    box = await CatalogService.set_box_available(session, box_id, data.is_available)
    if not box:
        raise HTTPException(status_code=404, detail="Box not found")
    return BoxResponse.model_validate(box)


@router.get("/products", response_model=List[ProductResponse])
async def list_all_products(session: AsyncSession = Depends(get_session)):
    products = await CatalogService.list_products(session, available_only=False)
    return [ProductResponse.model_validate(product) for product in products]


@router.post("/products", response_model=ProductResponse, status_code=201)
async def create_product(
    data: CatalogItemCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    product = await CatalogService.create_product(session, **data.model_dump())
    return ProductResponse.model_validate(product)


@router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    data: CatalogItemUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    product = await CatalogService.update_product(session, product_id, **data.model_dump())
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductResponse.model_validate(product)


@router.patch("/products/{product_id}/available", response_model=ProductResponse)
async def set_product_available(
    product_id: str,
    data: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
):
    product = await CatalogService.set_product_available(session, product_id, data.is_available)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductResponse.model_validate(product)


# ===========================
# BROADCASTS
# ===========================


def _broadcast_dict(broadcast) -> Dict[str, Any]:
    return {
        "id": broadcast.id,
        "title": broadcast.title,
        "message": broadcast.message,
        "image_url": broadcast.image_url,
        "buttons": BroadcastService.get_buttons(broadcast),
        "status": broadcast.status,
        "total_recipients": broadcast.total_recipients,
        "sent_count": broadcast.sent_count,
        "failed_count": broadcast.failed_count,
        "blocked_count": broadcast.blocked_count,
        "error_message": broadcast.error_message,
        "created_at": broadcast.created_at.isoformat(),
        "sent_at": broadcast.sent_at.isoformat() if broadcast.sent_at else None,
    }


@router.get("/broadcasts")
async def list_broadcasts(
    limit: int = 50,
    offset: int = 0,
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    broadcasts = await BroadcastService.list_broadcasts(session, limit=limit, offset=offset)
    return [_broadcast_dict(broadcast) for broadcast in broadcasts]


@router.post("/broadcasts", status_code=201)
async def create_broadcast(
    data: BroadcastCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        broadcast = await BroadcastService.create_broadcast(
            session,
            title=data.title,
            message=data.message,
            image_url=data.image_url,
            buttons=[button.model_dump() for button in data.buttons],
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _broadcast_dict(broadcast)


@router.get("/broadcasts/{broadcast_id}")
async def get_broadcast(
    broadcast_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    broadcast = await BroadcastService.get_broadcast(session, broadcast_id)
    if not broadcast:
        raise HTTPException(status_code=404, detail="Broadcast not found")
    return _broadcast_dict(broadcast)


@router.patch("/broadcasts/{broadcast_id}")
async def update_broadcast(
    broadcast_id: str,
    data: BroadcastUpdateRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    fields = data.model_dump(exclude={"buttons"})
    if data.buttons is not None:
        fields["buttons"] = [button.model_dump() for button in data.buttons]
    try:
        broadcast = await BroadcastService.update_broadcast(session, broadcast_id, **fields)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not broadcast:
        raise HTTPException(status_code=404, detail="Broadcast not found")
    return _broadcast_dict(broadcast)


@router.delete("/broadcasts/{broadcast_id}")
async def delete_broadcast(
    broadcast_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        deleted = await BroadcastService.delete_broadcast(session, broadcast_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Broadcast not found")
    return {"deleted": True}


@router.post("/broadcasts/{broadcast_id}/send")
async def send_broadcast(
    broadcast_id: str,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Send broadcast to all active users (draft or failed only)"""
    bot = Bot(token=BOT_TOKEN)
    try:
        broadcast = await BroadcastService.execute_broadcast(session, bot, broadcast_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    finally:
        await bot.session.close()

    if not broadcast:
        raise HTTPException(status_code=404, detail="Broadcast not found")

    logger.info(f"Admin API sent broadcast {broadcast_id}: {broadcast.sent_count} delivered")
    return _broadcast_dict(broadcast)
