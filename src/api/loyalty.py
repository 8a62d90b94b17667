# coding: utf-8
"""
Loyalty API Endpoints
Points balance, level and ledger history for the Mini App profile
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.database.engine import get_session
from src.database.models import User
from src.services.loyalty_service import LoyaltyService

router = APIRouter(prefix="/loyalty", tags=["loyalty"])


class LoyaltyBalanceResponse(BaseModel):
    """User's points balance and level info"""

    total_points: int
    total_earned: int
    total_spent: int
    total_referrals: int
    level: str
    points_to_next_level: int


class LoyaltyTransactionResponse(BaseModel):
    """Individual ledger entry"""

    id: str
    type: str
    points: int
    description: str
    order_id: Optional[str]
    created_at: datetime


@router.get("/balance", response_model=LoyaltyBalanceResponse)
async def get_balance(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Current balance, totals and loyalty level"""
    stats = await LoyaltyService.get_stats(session, user.id)
    return LoyaltyBalanceResponse(**stats)


@router.get("/history", response_model=List[LoyaltyTransactionResponse])
async def get_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Ledger entries, newest first"""
    entries = await LoyaltyService.get_history(session, user.id, limit=limit, offset=offset)
    return [
        LoyaltyTransactionResponse(
            id=entry.id,
            type=entry.type,
            points=entry.points,
            description=entry.description,
            order_id=entry.order_id,
            created_at=entry.created_at,
        )
        for entry in entries
    ]
