"""
Database models for KAVARA Mini App backend

SQLAlchemy 2.0 models with full type hints
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    BigInteger,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.core.enums import (
    PromoCodeType,
    ReferralStatus,
    OrderStatus,
    BroadcastStatus,
)
from src.utils.dates import utcnow


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


def new_uuid() -> str:
    return str(uuid.uuid4())


# ===========================
# USERS
# ===========================


class User(Base):
    """
    User model - anchored to Telegram identity

    Tracks:
    - Telegram identity (telegram_id, username)
    - Cached loyalty points balance (ledger is the source of truth)
    - Own referral code and who referred the user
    - Soft deactivation (users are never hard-deleted)
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    telegram_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        unique=True,
        index=True,
        nullable=True,
        comment="Telegram user ID",
    )

    username: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Telegram username (as displayed)"
    )

    # Lower-case username without '@' - exact lookup for admin grants
    username_normalized: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=True,
        comment="Normalized username for case-insensitive lookup",
    )

    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Denormalized cache of sum(loyalty_transactions.points)
    loyalty_points: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Cached loyalty points balance",
    )

    referral_code: Mapped[Optional[str]] = mapped_column(
        String(32),
        unique=True,
        index=True,
        nullable=True,
        comment="User's own referral code (also a promo code)",
    )

    referred_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="User ID of the referrer",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    orders = relationship("Order", back_populates="user")
    loyalty_transactions = relationship(
        "LoyaltyTransaction",
        back_populates="user",
        order_by="LoyaltyTransaction.created_at.desc()",
    )
    referrals_made = relationship(
        "Referral",
        foreign_keys="Referral.referrer_id",
        back_populates="referrer",
    )
    favorites = relationship("Favorite", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, telegram_id={self.telegram_id}, username={self.username})>"


# ===========================
# CATALOG
# ===========================


class Box(Base):
    """Curated bundle of products sold as a single catalog item"""

    __tablename__ = "boxes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, comment="Price in RUB")
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Box(id={self.id}, name={self.name}, price={self.price})>"


class Product(Base):
    """Individual catalog product"""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False, comment="Price in RUB")
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name}, price={self.price})>"


class Favorite(Base):
    """User's favorite box or product (toggle semantics, unique per pair)"""

    __tablename__ = "favorites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    box_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("boxes.id", ondelete="CASCADE"), nullable=True
    )
    product_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    user = relationship("User", back_populates="favorites")
    box = relationship("Box")
    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("user_id", "box_id", name="uq_favorite_user_box"),
        UniqueConstraint("user_id", "product_id", name="uq_favorite_user_product"),
        CheckConstraint(
            "(box_id IS NULL) <> (product_id IS NULL)",
            name="ck_favorite_single_item",
        ),
    )


# ===========================
# TRAINERS & PROMO CODES
# ===========================


class Trainer(Base):
    """
    Trainer (partner) model

    Trainer's promo code gives customers discount_percent off and earns the
    trainer commission_percent of each paid order. total_orders and
    total_earnings are running aggregates, incremented atomically.
    """

    __tablename__ = "trainers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    gym: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    promo_code: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, comment="Trainer's promo code"
    )

    discount_percent: Mapped[float] = mapped_column(Float, default=15, nullable=False)
    commission_percent: Mapped[float] = mapped_column(Float, default=10, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earnings: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Sum of floored commissions, RUB"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Trainer(id={self.id}, name={self.name}, promo_code={self.promo_code})>"


class PromoCode(Base):
    """
    Promo code model

    Usable only when is_active, not expired and used_count < max_uses.
    Owner rewards: points_per_use (fixed) takes precedence over
    reward_percent (share of order value).
    """

    __tablename__ = "promo_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    code: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False, comment="Upper-case code"
    )

    type: Mapped[str] = mapped_column(
        String(20), default=PromoCodeType.GENERAL.value, nullable=False
    )

    discount_percent: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    discount_amount: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Fixed discount in RUB (overrides percent)"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    trainer_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True
    )
    owner_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
    )

    points_per_use: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reward_percent: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    partner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    partner_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    trainer = relationship("Trainer")
    owner = relationship("User")

    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses",
            name="ck_promo_usage_cap",
        ),
    )

    def __repr__(self) -> str:
        return f"<PromoCode(code={self.code}, type={self.type}, used={self.used_count}/{self.max_uses})>"


class PromoCodeUsage(Base):
    """
    One row per order that redeemed a promo code.

    Unique order_id makes promo application idempotent under webhook
    redelivery.
    """

    __tablename__ = "promo_code_usages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    promo_code_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("promo_codes.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    points_awarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    order_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    promo_code = relationship("PromoCode")
    user = relationship("User")
    order = relationship("Order")


# ===========================
# ORDERS
# ===========================


class Order(Base):
    """
    Order model

    discount_percent, discount_amount and loyalty_points_used are snapshots
    taken at creation - later promo code edits never change history.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
    )
    box_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("boxes.id", ondelete="SET NULL"), nullable=True
    )
    product_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    telegram_username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delivery_method: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    selected_size: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, comment="Before discounts")
    total_price: Mapped[int] = mapped_column(Integer, nullable=False, comment="Amount to pay")

    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, index=True, nullable=False
    )
    payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    promo_code_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("promo_codes.id", ondelete="SET NULL"), nullable=True
    )
    trainer_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True
    )

    # Snapshots
    discount_percent: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    loyalty_points_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="orders")
    box = relationship("Box")
    product = relationship("Product")
    promo_code = relationship("PromoCode")
    trainer = relationship("Trainer")

    def __repr__(self) -> str:
        return f"<Order(number={self.order_number}, total={self.total_price}, status={self.status})>"


# ===========================
# LOYALTY LEDGER
# ===========================


class LoyaltyTransaction(Base):
    """
    Append-only loyalty ledger entry

    A user's true balance is sum(points) over their entries.
    idempotency_key (e.g. "promo_reward:<order_id>") blocks duplicates.
    """

    __tablename__ = "loyalty_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    order_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )

    type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, comment="earn/spend/referral_bonus/referral_reward"
    )
    points: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Signed delta (negative for spend)"
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True, nullable=False
    )

    user = relationship("User", back_populates="loyalty_transactions")
    order = relationship("Order")

    def __repr__(self) -> str:
        return f"<LoyaltyTransaction(user_id={self.user_id}, type={self.type}, points={self.points})>"


# ===========================
# REFERRALS
# ===========================


class Referral(Base):
    """
    Referral model - referrer invited referred

    bonus_awarded flips false -> true at most once (conditional UPDATE).
    """

    __tablename__ = "referrals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    referrer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    referred_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), default=ReferralStatus.PENDING.value, nullable=False, index=True
    )
    bonus_awarded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    referrer = relationship("User", foreign_keys=[referrer_id], back_populates="referrals_made")
    referred = relationship("User", foreign_keys=[referred_id])

    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_id", name="uq_referrer_referred"),
    )

    def __repr__(self) -> str:
        return f"<Referral(id={self.id}, referrer_id={self.referrer_id}, referred_id={self.referred_id}, status={self.status})>"


# ===========================
# REMINDERS
# ===========================


class ReminderSettings(Base):
    """Admin-configurable reminder campaign (e.g. unpaid_order)"""

    __tablename__ = "reminder_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    type: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delay_hours: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    message_template: Mapped[str] = mapped_column(Text, nullable=False)
    sent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    converted_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_reminders: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    min_interval_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class SentReminder(Base):
    """Log of reminders sent per (user, order)"""

    __tablename__ = "sent_reminders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    order_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=True
    )
    converted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_sent_reminders_order_type", "order_id", "type"),)


# ===========================
# BROADCASTS
# ===========================


class Broadcast(Base):
    """
    Admin broadcast to all active Telegram users

    Поддерживает:
    - Текст (HTML) и картинку по URL
    - Inline кнопки, открывающие Mini App с start-параметром
    - Счётчики доставки (sent / failed / blocked)
    """

    __tablename__ = "broadcasts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False, comment="Title for admin panel")
    message: Mapped[str] = mapped_column(Text, nullable=False, comment="Message text (HTML)")
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Inline кнопки (JSON array)
    buttons_json: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Buttons as JSON [{label, start_app_param}]",
    )

    status: Mapped[str] = mapped_column(
        String(20), default=BroadcastStatus.DRAFT.value, index=True, nullable=False
    )

    total_recipients: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    blocked_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Users who blocked the bot"
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Broadcast(id={self.id}, title={self.title}, status={self.status})>"


__all__ = [
    "Base",
    "User",
    "Box",
    "Product",
    "Favorite",
    "Trainer",
    "PromoCode",
    "PromoCodeUsage",
    "Order",
    "LoyaltyTransaction",
    "Referral",
    "ReminderSettings",
    "SentReminder",
    "Broadcast",
]
