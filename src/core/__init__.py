"""
Core module - базовые типы, результаты и исключения движка лояльности.
"""

from src.core.enums import (
    PromoCodeType,
    LoyaltyTransactionType,
    ReferralStatus,
    OrderStatus,
    EngineErrorKind,
    ERROR_MESSAGES,
)
from src.core.exceptions import StorageUnavailableError

__all__ = [
    "PromoCodeType",
    "LoyaltyTransactionType",
    "ReferralStatus",
    "OrderStatus",
    "EngineErrorKind",
    "ERROR_MESSAGES",
    "StorageUnavailableError",
]
