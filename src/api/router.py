"""
FastAPI Router для KAVARA Telegram Mini App API
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from src.api.auth import get_current_user
from src.database.models import User

# Import sub-routers
from src.api.promo import router as promo_router
from src.api.loyalty import router as loyalty_router
from src.api.referral import router as referral_router
from src.api.orders import router as orders_router, webhook_router as payments_webhook_router
from src.api.favorites import router as favorites_router
from src.api.catalog import router as catalog_router
from src.api.admin import router as admin_router


# Создаем главный router
router = APIRouter(tags=["mini-app"])

# Include sub-routers (они уже имеют префиксы)
router.include_router(promo_router)
router.include_router(loyalty_router)
router.include_router(referral_router)
router.include_router(orders_router)
router.include_router(payments_webhook_router)  # Payment provider webhook (public, signed)
router.include_router(favorites_router)
router.include_router(catalog_router)  # Public catalog
router.include_router(admin_router)  # Admin token required


@router.get("/user/me")
async def get_me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    """Current Mini App user"""
    return {
        "id": user.id,
        "telegram_id": user.telegram_id,
        "username": user.username,
        "first_name": user.first_name,
        "loyalty_points": user.loyalty_points,
        "referral_code": user.referral_code,
    }
