"""
Core Enums - единые типы для движка лояльности и промокодов.

Определяет:
- PromoCodeType: источник промокода (тренер, общий, реферальный)
- LoyaltyTransactionType: типы записей журнала баллов
- ReferralStatus: статус реферальной связи
- OrderStatus: статусы заказа
- EngineErrorKind: ожидаемые бизнес-отказы (не исключения)
- BroadcastStatus: статусы рассылки
"""

from enum import Enum


class PromoCodeType(str, Enum):
    """Promo code kinds"""

    TRAINER = "trainer"  # Выдан тренеру-партнёру, приносит комиссию
    GENERAL = "general"  # Обычный маркетинговый код
    LOYALTY_DISCOUNT = "loyalty_discount"  # Скидка для постоянных клиентов
    REFERRAL = "referral"  # Личный код пользователя (владелец получает баллы)


class LoyaltyTransactionType(str, Enum):
    """Ledger entry types"""

    EARN = "earn"  # Начисление (кэшбек, ручное начисление)
    SPEND = "spend"  # Списание баллов в счёт заказа
    REFERRAL_BONUS = "referral_bonus"  # Разовый бонус за приглашённого друга
    REFERRAL_REWARD = "referral_reward"  # Вознаграждение владельцу промокода


class ReferralStatus(str, Enum):
    """Referral status"""

    PENDING = "pending"  # Друг зарегистрирован, покупки ещё нет
    COMPLETED = "completed"  # Первая оплаченная покупка


class OrderStatus(str, Enum):
    """Order lifecycle"""

    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class EngineErrorKind(str, Enum):
    """Expected business rejections reported back to the caller.

    Это нормальные состояния UI (код недействителен, не хватает баллов),
    а не сбои приложения.
    """

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_AMOUNT = "invalid_amount"
    ALREADY_APPLIED = "already_applied"
    USER_NOT_FOUND = "user_not_found"
    OWN_CODE = "own_code"


# Сообщения для пользователя по каждому виду отказа
ERROR_MESSAGES = {
    EngineErrorKind.NOT_FOUND: "Промокод не найден",
    EngineErrorKind.INACTIVE: "Промокод недействителен",
    EngineErrorKind.EXPIRED: "Срок действия промокода истёк",
    EngineErrorKind.USAGE_LIMIT_REACHED: "Промокод больше не может быть использован",
    EngineErrorKind.INSUFFICIENT_BALANCE: "Недостаточно баллов",
    EngineErrorKind.INVALID_AMOUNT: "Некорректное количество баллов",
    EngineErrorKind.ALREADY_APPLIED: "Промокод уже применён к этому заказу",
    EngineErrorKind.USER_NOT_FOUND: "Пользователь не найден",
    EngineErrorKind.OWN_CODE: "Нельзя использовать собственный промокод",
}


class BroadcastStatus(str, Enum):
    """Broadcast lifecycle"""

    DRAFT = "draft"  # Черновик, можно редактировать
    SENDING = "sending"  # Отправляется прямо сейчас
    SENT = "sent"  # Завершена
    FAILED = "failed"  # Прервана ошибкой, можно отправить повторно
