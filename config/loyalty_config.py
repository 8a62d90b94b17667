# coding: utf-8
"""
KAVARA Loyalty Program Configuration

Centralized configuration for points, promo codes and referral rewards.
Allows easy adjustments without code changes.
"""

from typing import List, Optional, Tuple


# =======================
# REFERRAL PROGRAM
# =======================

# Реферальный код = промокод, владелец получает % от суммы заказа баллами
REFERRAL_REWARD_PERCENT = 10  # "Вы получаете 10% баллами от суммы заказа"

# Скидка для друга, который оформил заказ по реферальному коду
REFERRAL_BUYER_DISCOUNT_PERCENT = 5

# Разовый бонус пригласившему после первой оплаченной покупки друга
REFERRAL_BONUS_POINTS = 200

# Генерация кода: <USERNAME|USER><4 цифры>, fallback KAVARA<6 цифр>
REFERRAL_CODE_ATTEMPTS = 10
REFERRAL_CODE_SUFFIX_DIGITS = 4
REFERRAL_CODE_DEFAULT_BASE = "USER"
REFERRAL_CODE_FALLBACK_PREFIX = "KAVARA"
REFERRAL_CODE_MAX_BASE_LENGTH = 16


# =======================
# POINTS EARNING / SPENDING
# =======================

# Кэшбек баллами покупателю за оплаченный заказ (1 балл = 1 ₽)
PURCHASE_CASHBACK_PERCENT = 5

# Максимальная доля заказа, которую можно оплатить баллами
MAX_POINTS_SHARE_PERCENT = 50


# =======================
# TRAINERS
# =======================

TRAINER_DEFAULT_DISCOUNT_PERCENT = 15
TRAINER_DEFAULT_COMMISSION_PERCENT = 10


# =======================
# LOYALTY LEVELS
# =======================

# (порог баллов, название) - по убыванию
LOYALTY_LEVELS: List[Tuple[int, str]] = [
    (10000, "Platinum"),
    (5000, "Gold"),
    (2000, "Silver"),
    (500, "Bronze"),
    (0, "Новичок"),
]


def get_loyalty_level(points: int) -> Tuple[str, int]:
    """
    Получить уровень лояльности и сколько баллов до следующего

    Args:
        points: Текущий баланс баллов

    Returns:
        Tuple of (level name, points to next level; 0 on max level)
    """
    next_threshold: Optional[int] = None
    for threshold, name in LOYALTY_LEVELS:
        if points >= threshold:
            return name, (next_threshold - points) if next_threshold else 0
        next_threshold = threshold

    # Отрицательный баланс после ручного списания
    return LOYALTY_LEVELS[-1][1], LOYALTY_LEVELS[-2][0] - points


def max_usable_points(order_amount: int) -> int:
    """Максимум баллов, которые можно списать для заказа на указанную сумму"""
    return (max(order_amount, 0) * MAX_POINTS_SHARE_PERCENT) // 100


# =======================
# REMINDERS
# =======================

UNPAID_ORDER_REMINDER_TYPE = "unpaid_order"

DEFAULT_UNPAID_ORDER_TEMPLATE = (
    "👋 {name}, ваш заказ <b>{order_number}</b> на сумму {total} ₽ ещё не оплачен.\n\n"
    "Вернитесь в приложение, чтобы завершить покупку."
)
DEFAULT_REMINDER_DELAY_HOURS = 2
DEFAULT_MAX_REMINDERS = 3
DEFAULT_MIN_INTERVAL_HOURS = 24


if __name__ == "__main__":
    print("🎁 KAVARA Loyalty Configuration\n")
    print(f"Referral reward: {REFERRAL_REWARD_PERCENT}% баллами")
    print(f"Referral buyer discount: {REFERRAL_BUYER_DISCOUNT_PERCENT}%")
    print(f"Purchase cashback: {PURCHASE_CASHBACK_PERCENT}%")
    for points in [0, 499, 500, 2500, 12000]:
        print(f"  {points} баллов -> {get_loyalty_level(points)}")
