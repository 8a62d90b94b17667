# coding: utf-8
"""
KAVARA Order Service

Checkout (promo validation, points redemption, referral registration)
and finalisation on payment (promo application, referral bonus, cashback).

Every finalisation step is idempotent, so a redelivered payment webhook
retries whatever a previous delivery did not finish.
"""

from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.core.enums import EngineErrorKind, OrderStatus, PromoCodeType
from src.core.exceptions import wraps_storage_errors
from src.core.results import CheckoutResult, OrderPaymentResult
from src.database import crud
from src.database.models import Order
from src.services.loyalty_service import LoyaltyService
from src.services.promo_service import PromoCodeService
from src.services.referral_service import ReferralService
from src.services.reminder_service import ReminderService
from src.utils.money import percent_of
from config.loyalty_config import PURCHASE_CASHBACK_PERCENT, max_usable_points


class OrderService:
    """Service for orders"""

    @staticmethod
    @wraps_storage_errors("order.create")
    async def create_order(
        session: AsyncSession,
        user_id: str,
        customer_name: str,
        customer_phone: str,
        delivery_method: str,
        payment_method: str,
        box_id: Optional[str] = None,
        product_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        telegram_username: Optional[str] = None,
        selected_size: Optional[str] = None,
        promo_code: Optional[str] = None,
        loyalty_points: int = 0,
    ) -> CheckoutResult:
        """
        Create pending order

        Price pipeline: item price -> promo discount -> points (capped at
        MAX_POINTS_SHARE_PERCENT of the discounted price) -> total_price.
        Discount and points are snapshotted on the order.
        """
        if bool(box_id) == bool(product_id):
            raise ValueError("Exactly one of box_id or product_id is required")
        if loyalty_points < 0:
            return CheckoutResult(error=EngineErrorKind.INVALID_AMOUNT)

        user = await crud.get_user(session, user_id)
        if not user:
            return CheckoutResult(error=EngineErrorKind.USER_NOT_FOUND)

        item = await crud.get_box(session, box_id) if box_id else await crud.get_product(session, product_id)
        if not item or not item.is_available:
            return CheckoutResult(error=EngineErrorKind.NOT_FOUND)
        subtotal = item.price

        promo = None
        if promo_code:
            promo = await PromoCodeService.validate(session, promo_code, subtotal, user_id=user.id)
            if not promo.ok:
                return CheckoutResult(error=promo.error, subtotal=subtotal)

        discount = promo.discount_amount if promo else 0
        discounted = subtotal - discount
        points_cap = max_usable_points(discounted)
        if loyalty_points > points_cap:
            return CheckoutResult(
                error=EngineErrorKind.INSUFFICIENT_BALANCE,
                subtotal=subtotal,
                discount_amount=discount,
                details={"max_usable_points": points_cap},
            )

        try:
            order = Order(
                order_number=crud.generate_order_number(),
                user_id=user.id,
                box_id=box_id,
                product_id=product_id,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                telegram_username=telegram_username or user.username,
                delivery_method=delivery_method,
                payment_method=payment_method,
                selected_size=selected_size,
                subtotal=subtotal,
                total_price=discounted - loyalty_points,
                promo_code_id=promo.promo_code_id if promo else None,
                trainer_id=promo.trainer_id if promo else None,
                discount_percent=promo.discount_percent if promo else 0,
                discount_amount=discount,
                loyalty_points_used=loyalty_points,
            )
            session.add(order)
            await session.flush()

            if loyalty_points:
                spent = await LoyaltyService.redeem(
                    session,
                    user.id,
                    loyalty_points,
                    order_id=order.id,
                    max_usable_points=points_cap,
                    description=f"Оплата баллами заказа {order.order_number}",
                    commit=False,
                )
                if not spent.ok:
                    await session.rollback()
                    return CheckoutResult(
                        error=spent.error,
                        subtotal=subtotal,
                        discount_amount=discount,
                        details={"balance": spent.balance, "max_usable_points": points_cap},
                    )

            # Referral code used by a not yet referred customer links them
            referral_registered = False
            if promo and promo.owner_id and not user.referred_by:
                promo_row = await crud.get_promo_code(session, promo.promo_code_id)
                if promo_row and promo_row.type == PromoCodeType.REFERRAL.value:
                    referral = await ReferralService.register_referral(
                        session, promo.owner_id, user.id, commit=False
                    )
                    referral_registered = referral is not None

            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            f"Order {order.order_number} created for user {user_id}: "
            f"{subtotal} - {discount} - {loyalty_points} pts = {order.total_price}"
        )
        return CheckoutResult(
            order_id=order.id,
            order_number=order.order_number,
            subtotal=subtotal,
            discount_amount=discount,
            loyalty_points_used=loyalty_points,
            total_price=order.total_price,
            details={
                "promo_code": promo.code if promo else None,
                "trainer_name": promo.trainer_name if promo else None,
                "referral_registered": referral_registered,
            },
        )

    @staticmethod
    @wraps_storage_errors("order.mark_paid")
    async def mark_paid(
        session: AsyncSession, order_id: str, payment_id: Optional[str] = None
    ) -> OrderPaymentResult:
        """
        Finalize paid order

        pending -> paid is a conditional UPDATE (one winner). Then, on the
        winning call and on redeliveries of an already paid order:
        - promo code application
        - referral completion for the customer
        - purchase cashback
        """
        order = await crud.get_order(session, order_id)
        if not order:
            return OrderPaymentResult(error=EngineErrorKind.NOT_FOUND, order_id=order_id)

        user_id = order.user_id
        promo_code_id = order.promo_code_id
        total_price = order.total_price
        order_number = order.order_number

        if order.status == OrderStatus.CANCELLED.value:
            logger.warning(f"Payment for cancelled order {order_number} ignored")
            return OrderPaymentResult(error=EngineErrorKind.INACTIVE, order_id=order_id)

        try:
            newly_paid = await crud.transition_order_to_paid(session, order_id, payment_id)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        if not newly_paid:
            await session.refresh(order, ["status"])
            if order.status != OrderStatus.PAID.value:
                return OrderPaymentResult(order_id=order_id)
            logger.info(f"Order {order_number} already paid, re-running finalisation")

        result = OrderPaymentResult(order_id=order_id, newly_paid=newly_paid)

        if promo_code_id:
            result.promo = await PromoCodeService.apply(session, order_id)

        if user_id:
            referral = await ReferralService.complete_for_referred_user(session, user_id)
            result.referral_completed = bool(referral and referral.bonus_awarded_now)

            cashback = percent_of(total_price, PURCHASE_CASHBACK_PERCENT)
            if cashback > 0:
                earned = await LoyaltyService.earn(
                    session,
                    user_id,
                    cashback,
                    order_id=order_id,
                    description=f"Кэшбек {PURCHASE_CASHBACK_PERCENT}% за заказ {order_number}",
                    idempotency_key=f"cashback:{order_id}",
                )
                result.cashback_points = earned.points

        await ReminderService.mark_converted(session, order_id)

        if newly_paid:
            logger.info(f"Order {order_number} paid: {total_price} RUB, cashback {result.cashback_points}")
        return result

    @staticmethod
    async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
        return await crud.get_order(session, order_id)

    @staticmethod
    async def get_user_orders(session: AsyncSession, user_id: str, limit: int = 50) -> List[Order]:
        return await crud.get_user_orders(session, user_id, limit=limit)

    @staticmethod
    async def cancel_order(session: AsyncSession, order_id: str) -> Optional[Order]:
        """
        Cancel pending order and refund redeemed points

        Paid orders are not reversed here (promo effects stay).
        """
        order = await crud.get_order(session, order_id)
        if not order:
            return None

        try:
            result = await session.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
                .values(status=OrderStatus.CANCELLED.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.commit()
                return None

            if order.loyalty_points_used and order.user_id:
                await LoyaltyService.earn(
                    session,
                    order.user_id,
                    order.loyalty_points_used,
                    order_id=order.id,
                    description=f"Возврат баллов за отменённый заказ {order.order_number}",
                    idempotency_key=f"refund:{order.id}",
                    commit=False,
                )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        await session.refresh(order)
        logger.info(f"Order {order.order_number} cancelled")
        return order
