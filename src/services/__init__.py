"""Loyalty engine services"""
from .promo_service import PromoCodeService
from .loyalty_service import LoyaltyService
from .referral_service import ReferralService
from .trainer_service import TrainerService
from .order_service import OrderService
from .favorites_service import FavoritesService
from .reminder_service import ReminderService

__all__ = [
    'PromoCodeService',
    'LoyaltyService',
    'ReferralService',
    'TrainerService',
    'OrderService',
    'FavoritesService',
    'ReminderService',
]
