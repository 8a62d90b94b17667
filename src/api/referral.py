"""
Referral API Endpoints
Provides referral system functionality for Mini App
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.database.engine import get_session
from src.database.models import User
from src.services.referral_service import ReferralService
from config.config import BOT_USERNAME
from config.loyalty_config import (
    REFERRAL_BONUS_POINTS,
    REFERRAL_BUYER_DISCOUNT_PERCENT,
    REFERRAL_REWARD_PERCENT,
)

router = APIRouter(prefix="/referral", tags=["referral"])


class ReferralCodeResponse(BaseModel):
    referral_code: str
    referral_link: str
    buyer_discount_percent: float
    reward_percent: float
    bonus_points: int


class ReferralEntryResponse(BaseModel):
    id: str
    referred_name: Optional[str]
    status: str
    bonus_awarded: bool
    created_at: datetime
    completed_at: Optional[datetime]


@router.post("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Get or generate personal referral code and deep link"""
    code = await ReferralService.generate_referral_code(session, user.id)
    return ReferralCodeResponse(
        referral_code=code,
        referral_link=f"https://t.me/{BOT_USERNAME}?start=ref_{code}",
        buyer_discount_percent=REFERRAL_BUYER_DISCOUNT_PERCENT,
        reward_percent=REFERRAL_REWARD_PERCENT,
        bonus_points=REFERRAL_BONUS_POINTS,
    )


@router.get("/list", response_model=List[ReferralEntryResponse])
async def list_referrals(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Friends invited by current user"""
    referrals = await ReferralService.get_referrals(session, user.id)
    return [
        ReferralEntryResponse(
            id=referral.id,
            referred_name=(
                referral.referred.first_name or referral.referred.username
                if referral.referred
                else None
            ),
            status=referral.status,
            bonus_awarded=referral.bonus_awarded,
            created_at=referral.created_at,
            completed_at=referral.completed_at,
        )
        for referral in referrals
    ]
