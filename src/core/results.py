"""
Result objects returned by the engine services.

Each result carries either the successful payload or an EngineErrorKind,
so handlers can render a kind-specific message instead of a bare boolean.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from src.core.enums import ERROR_MESSAGES, EngineErrorKind


@dataclass
class EngineResult:
    """Base result: success flag + optional error kind"""

    error: Optional[EngineErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> Optional[str]:
        return ERROR_MESSAGES.get(self.error) if self.error else None

    def error_dict(self) -> Dict[str, Any]:
        return {"error": self.error.value if self.error else None, "message": self.message}


@dataclass
class PromoValidationResult(EngineResult):
    """Result of PromoCodeService.validate"""

    is_valid: bool = False
    code: Optional[str] = None
    promo_code_id: Optional[str] = None
    discount_percent: float = 0
    discount_amount: int = 0
    trainer_id: Optional[str] = None
    trainer_name: Optional[str] = None
    owner_id: Optional[str] = None

    @classmethod
    def rejected(cls, error: EngineErrorKind, code: Optional[str] = None) -> "PromoValidationResult":
        return cls(error=error, is_valid=False, code=code)


@dataclass
class PromoApplicationResult(EngineResult):
    """Result of PromoCodeService.apply"""

    promo_code_id: Optional[str] = None
    used_count: int = 0
    owner_points_awarded: int = 0
    trainer_commission: int = 0


@dataclass
class LedgerResult(EngineResult):
    """Result of a balance-changing ledger operation"""

    user_id: Optional[str] = None
    transaction_id: Optional[str] = None
    points: int = 0
    balance: int = 0


@dataclass
class RecalculationResult(EngineResult):
    """Result of LoyaltyService.recalculate"""

    user_id: Optional[str] = None
    previous_balance: int = 0
    balance: int = 0

    @property
    def drift(self) -> int:
        return self.balance - self.previous_balance


@dataclass
class ReferralCompletionResult(EngineResult):
    """Result of ReferralService.complete_referral"""

    referral_id: Optional[str] = None
    bonus_awarded_now: bool = False
    points: int = 0


@dataclass
class CheckoutResult(EngineResult):
    """Result of OrderService.create_order"""

    order_id: Optional[str] = None
    order_number: Optional[str] = None
    subtotal: int = 0
    discount_amount: int = 0
    loyalty_points_used: int = 0
    total_price: int = 0
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OrderPaymentResult(EngineResult):
    """Result of OrderService.mark_paid"""

    order_id: Optional[str] = None
    newly_paid: bool = False
    promo: Optional[PromoApplicationResult] = None
    referral_completed: bool = False
    cashback_points: int = 0
