# coding: utf-8
"""
Promo code API Endpoints
Validation of promo codes from the Mini App checkout screen
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.api.auth import get_current_user
from src.api.errors import raise_for_result
from src.database.engine import get_session
from src.database.models import User
from src.services.promo_service import PromoCodeService

router = APIRouter(prefix="/promo", tags=["promo"])

limiter = Limiter(key_func=get_remote_address)


class ValidatePromoRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    order_amount: int


class ValidatePromoResponse(BaseModel):
    is_valid: bool
    code: str
    discount_percent: float
    discount_amount: int
    final_amount: int
    trainer_name: Optional[str] = None


@router.post("/validate", response_model=ValidatePromoResponse)
@limiter.limit("30/minute")  # Защита от перебора кодов
async def validate_promo_code(
    request: Request,  # Требуется для limiter
    data: ValidatePromoRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Validate promo code for given order amount (read-only)

    Errors:
        404 not_found, 400 inactive/expired/own_code/invalid_amount,
        409 usage_limit_reached
    """
    result = await PromoCodeService.validate(session, data.code, data.order_amount, user_id=user.id)
    raise_for_result(result)

    return ValidatePromoResponse(
        is_valid=True,
        code=result.code,
        discount_percent=result.discount_percent,
        discount_amount=result.discount_amount,
        final_amount=data.order_amount - result.discount_amount,
        trainer_name=result.trainer_name,
    )
