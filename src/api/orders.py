# coding: utf-8
"""
Orders API Endpoints
- Checkout from the Mini App
- Payment provider webhook (order finalisation)

Webhook security: HMAC-SHA256 of the raw body with PAYMENT_WEBHOOK_SECRET
in the X-Webhook-Signature header.
"""

import hashlib
import hmac
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.api.auth import get_current_user
from src.api.errors import raise_for_result
from src.database.engine import get_session
from src.database.models import User
from src.services.order_service import OrderService
from config.config import PAYMENT_WEBHOOK_SECRET

router = APIRouter(prefix="/orders", tags=["orders"])
webhook_router = APIRouter(prefix="/payments", tags=["payments"])

SUCCESS_PAYMENT_STATUSES = {"succeeded", "paid"}


class CreateOrderRequest(BaseModel):
    box_id: Optional[str] = None
    product_id: Optional[str] = None
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., min_length=5, max_length=50)
    customer_email: Optional[str] = None
    delivery_method: str
    payment_method: str
    selected_size: Optional[str] = None
    promo_code: Optional[str] = None
    loyalty_points: int = Field(0, ge=0)


class CreateOrderResponse(BaseModel):
    order_id: str
    order_number: str
    subtotal: int
    discount_amount: int
    loyalty_points_used: int
    total_price: int


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    subtotal: int
    discount_amount: int
    loyalty_points_used: int
    total_price: int
    created_at: datetime
    paid_at: Optional[datetime]


class PaymentWebhookPayload(BaseModel):
    order_id: str
    payment_id: Optional[str] = None
    status: str


def verify_webhook_signature(body: bytes, signature: str) -> bool:
    expected = hmac.new(PAYMENT_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@router.post("", response_model=CreateOrderResponse, status_code=201)
async def create_order(
    data: CreateOrderRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create pending order with optional promo code and points"""
    if bool(data.box_id) == bool(data.product_id):
        raise HTTPException(status_code=422, detail="Exactly one of box_id or product_id is required")

    result = await OrderService.create_order(
        session,
        user_id=user.id,
        box_id=data.box_id,
        product_id=data.product_id,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        customer_email=data.customer_email,
        telegram_username=user.username,
        delivery_method=data.delivery_method,
        payment_method=data.payment_method,
        selected_size=data.selected_size,
        promo_code=data.promo_code,
        loyalty_points=data.loyalty_points,
    )
    raise_for_result(result)

    return CreateOrderResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        subtotal=result.subtotal,
        discount_amount=result.discount_amount,
        loyalty_points_used=result.loyalty_points_used,
        total_price=result.total_price,
    )


@router.get("/my", response_model=List[OrderResponse])
async def get_my_orders(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    orders = await OrderService.get_user_orders(session, user.id)
    return [
        OrderResponse(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            loyalty_points_used=order.loyalty_points_used,
            total_price=order.total_price,
            created_at=order.created_at,
            paid_at=order.paid_at,
        )
        for order in orders
    ]


@webhook_router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_webhook_signature: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
):
    """
    Payment provider callback

    Redelivery is safe: finalisation steps are idempotent.
    """
    body = await request.body()

    if not PAYMENT_WEBHOOK_SECRET:
        logger.error("PAYMENT_WEBHOOK_SECRET not configured in .env")
        raise HTTPException(status_code=500, detail="Webhook not configured")
    if not x_webhook_signature:
        raise HTTPException(status_code=403, detail="Missing signature header")
    if not verify_webhook_signature(body, x_webhook_signature):
        logger.error("Invalid payment webhook signature")
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = PaymentWebhookPayload.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e.errors()}")

    if payload.status not in SUCCESS_PAYMENT_STATUSES:
        logger.info(f"Payment webhook for order {payload.order_id} with status {payload.status} ignored")
        return {"ok": True, "processed": False}

    result = await OrderService.mark_paid(session, payload.order_id, payload.payment_id)
    raise_for_result(result)

    return {
        "ok": True,
        "processed": True,
        "newly_paid": result.newly_paid,
        "cashback_points": result.cashback_points,
    }
