# app/services/payment_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from fastapi import BackgroundTasks, HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import PaymentVerificationFailed, StorageError, ValidationFailed
from app.core.payment_gateway import (
    GATEWAY_ERRORS,
    PaymentProof,
    RazorpayGateway,
    get_payment_gateway,
    to_subunits,
)
from app.models.order import OrderItem
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.order import CheckoutItem, OrderCreate, OrderCustomer, OrderWithItemsRead
from app.schemas.payment import PaymentOrderCreate, PaymentOrderRead, PaymentVerify
from app.services.notification_service import NotificationDispatcher
from app.services.pricing import final_price

if TYPE_CHECKING:
    from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


# Payment status after cancellation, for every (payment_method, payment_status).
CANCEL_PAYMENT_STATUS: dict[tuple[str, str], str] = {
    ("Online", "Pending"): "Pending",
    ("Online", "Paid"): "Refund Pending",
    ("Online", "Failed"): "Failed",
    ("Online", "Refund Pending"): "Refund Pending",
    ("COD", "Pending"): "Failed",
    ("COD", "Paid"): "Failed",
    ("COD", "Failed"): "Failed",
    ("COD", "Refund Pending"): "Failed",
}


def payment_status_after_cancel(payment_method: str, payment_status: str) -> str:
    return CANCEL_PAYMENT_STATUS[(payment_method, payment_status)]


def gateway_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Payment gateway unavailable, please retry",
    )


@dataclass
class PricedLine:
    product_id: uuid.UUID
    product_name: str
    selected_weight: str
    unit_price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class PaymentService:
    """
    Bridges checkout and the payment gateway to order creation.

    Responsibilities:
      - Reprice checkout lines from the catalog (client prices are ignored)
      - COD checkout: create the order immediately (payment Pending)
      - Online checkout: create the order only after the gateway signature
        checks out (payment Paid); nothing is stored for failed attempts
      - Create gateway orders for the checkout widget
      - Empty the cart and schedule the order emails
    """

    def __init__(
        self,
        orders: OrderService,
        cart_repo: CartRepository,
        product_repo: ProductRepository,
        notifier: NotificationDispatcher,
        gateway_provider: Callable[[], RazorpayGateway] = get_payment_gateway,
    ):
        self.orders = orders
        self.cart_repo = cart_repo
        self.product_repo = product_repo
        self.notifier = notifier
        self.gateway_provider = gateway_provider

    # -------- Checkout --------

    def checkout(
        self,
        session: Session,
        user: User,
        payload: OrderCreate,
        background_tasks: BackgroundTasks | None = None,
        proof: PaymentProof | None = None,
    ) -> OrderWithItemsRead:
        """
        Place an order.

        COD:
          1. Validate items (payload or cart) and address.
          2. Reprice every line; total = sum of line totals.
          3. Create order (status=pending, payment=Pending), clear cart, commit.
          4. Schedule notification.

        Online (only reachable with a gateway proof, see verify_payment):
          1. Validate items and address.
          2. Verify the signature; mismatch => PaymentVerificationFailed.
          3. Same payment id already turned into an order => return it.
          4. Reprice; the gateway's charged amount must equal the total,
             otherwise PaymentVerificationFailed.
          5. Create order (status=pending, payment=Paid), commit.
          6. Schedule notification.
        """
        checkout_items = self._checkout_items(session, user.id, payload)
        if payload.address is None:
            raise ValidationFailed("Delivery address is required")

        gateway = None
        if payload.payment_method == "Online":
            if proof is None:
                raise ValidationFailed(
                    "Online orders are created by /payment/verify-payment "
                    "once the gateway confirms the payment"
                )
            gateway = self.gateway_provider()
            if not gateway.verify_signature(proof):
                raise PaymentVerificationFailed()

            existing = self.orders.order_repo.get_by_payment_id(session, proof.payment_id)
            if existing is not None:
                logger.info(
                    "Payment %s already recorded on order %s", proof.payment_id, existing.id
                )
                return self._owner_view(session, existing.id)
            payment_status = "Paid"
        else:
            payment_status = "Pending"

        lines = self._price_lines(session, checkout_items)
        if gateway is not None:
            self._check_charged_amount(user, gateway, proof, lines)
            logger.info("Payment %s verified, creating order", proof.payment_id)

        try:
            order, _ = self.orders.create_order(
                session,
                user_id=user.id,
                address=payload.address,
                delivery_date=payload.delivery_date,
                delivery_time=payload.delivery_time,
                items=[
                    OrderItem(
                        product_id=ln.product_id,
                        product_name=ln.product_name,
                        selected_weight=ln.selected_weight,
                        unit_price=ln.unit_price,
                        quantity=ln.quantity,
                    )
                    for ln in lines
                ],
                payment_method=payload.payment_method,
                payment_status=payment_status,
                razorpay_order_id=proof.provider_order_id if proof else None,
                razorpay_payment_id=proof.payment_id if proof else None,
            )
            self.cart_repo.clear_user_cart(session, user.id, commit=False)
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if proof is not None:
                existing = self.orders.order_repo.get_by_payment_id(session, proof.payment_id)
                if existing is not None:
                    logger.info(
                        "Payment %s recorded concurrently on order %s",
                        proof.payment_id,
                        existing.id,
                    )
                    return self._owner_view(session, existing.id)
            logger.exception("Checkout for user %s failed on insert", user.id)
            raise StorageError("Could not create the order; no changes were saved") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(
                "Checkout for user %s failed (payment %s)",
                user.id,
                proof.payment_id if proof else "COD",
            )
            raise StorageError("Could not create the order; no changes were saved") from exc

        if payload.total_amount is not None and abs(payload.total_amount - order.total_amount) >= 0.01:
            logger.info(
                "Order %s: client total %.2f ignored, server total %.2f",
                order.id,
                payload.total_amount,
                order.total_amount,
            )
        logger.info(
            "Order %s created for user %s (%s, %s, total %.2f)",
            order.id,
            user.id,
            order.payment_method,
            order.payment_status,
            order.total_amount,
        )

        dto = self._owner_view(session, order.id)
        customer = OrderCustomer(id=user.id, name=user.name, email=user.email, phone=user.phone)
        if background_tasks is not None:
            background_tasks.add_task(self.notifier.notify_order_created, dto, customer)
        else:
            self.notifier.notify_order_created(dto, customer)
        return dto

    def verify_payment(
        self,
        session: Session,
        user: User,
        payload: PaymentVerify,
        background_tasks: BackgroundTasks | None = None,
    ) -> OrderWithItemsRead:
        """
        The only path that creates an Online order.
        """
        proof = PaymentProof(
            provider_order_id=payload.razorpay_order_id,
            payment_id=payload.razorpay_payment_id,
            signature=payload.razorpay_signature,
        )
        order_data = payload.order_data.model_copy(update={"payment_method": "Online"})
        return self.checkout(session, user, order_data, background_tasks, proof=proof)

    # -------- Gateway order --------

    def create_payment_order(
        self,
        session: Session,
        user: User,
        payload: PaymentOrderCreate,
    ) -> PaymentOrderRead:
        """
        Create the gateway order for the amount the backend computes.
        Nothing is persisted.
        """
        items = self._checkout_items(session, user.id, payload)
        lines = self._price_lines(session, items)
        amount = round(sum(ln.line_total for ln in lines), 2)
        currency = payload.currency or get_settings().CURRENCY

        gateway = self.gateway_provider()
        try:
            intent = gateway.create_payment_intent(amount, currency)
        except GATEWAY_ERRORS as exc:
            logger.exception("Gateway order creation failed for user %s", user.id)
            raise gateway_unavailable() from exc

        return PaymentOrderRead(
            intent_id=intent.intent_id,
            provider_order_id=intent.provider_order_id,
            amount=amount,
            amount_subunits=to_subunits(amount),
            currency=intent.currency,
            key_id=gateway.key_id,
        )

    # -------- Helpers --------

    def _check_charged_amount(
        self,
        user: User,
        gateway: RazorpayGateway,
        proof: PaymentProof,
        lines: list[PricedLine],
    ) -> None:
        """
        The payment must have charged exactly the repriced order total.
        """
        expected = to_subunits(round(sum(ln.line_total for ln in lines), 2))
        try:
            charged = gateway.paid_amount_subunits(proof)
        except GATEWAY_ERRORS as exc:
            logger.exception("Could not fetch payment %s for user %s", proof.payment_id, user.id)
            raise gateway_unavailable() from exc

        if charged != expected:
            logger.warning(
                "Payment %s charged %s paise, order total is %d paise; rejected",
                proof.payment_id,
                charged,
                expected,
            )
            raise PaymentVerificationFailed("Paid amount does not match the order total")

    def _checkout_items(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: OrderCreate | PaymentOrderCreate,
    ) -> list[CheckoutItem]:
        """
        Items from the payload, or the user's cart when none were sent.
        """
        if payload.items is not None:
            items = payload.items
        else:
            items = [
                CheckoutItem(
                    product_id=ci.product_id,
                    selected_weight=ci.selected_weight,
                    quantity=ci.quantity,
                    unit_price=ci.unit_price,
                )
                for ci in self.cart_repo.list_for_user(session, user_id)
            ]
        if not items:
            raise ValidationFailed("Order items are required")
        return items

    def _price_lines(self, session: Session, items: list[CheckoutItem]) -> list[PricedLine]:
        """
        Reprice each line from the catalog tier and the product discount.
        """
        errors: list[dict[str, str]] = []
        lines: list[PricedLine] = []

        for it in items:
            product = self.product_repo.get_by_id(session, it.product_id)
            if not product:
                errors.append({"product_id": str(it.product_id), "reason": "Product not found"})
                continue
            if not product.is_available:
                errors.append({"product_id": str(it.product_id), "reason": "Product is unavailable"})
                continue
            tier = self.product_repo.get_price(session, it.product_id, it.selected_weight)
            if not tier:
                errors.append(
                    {
                        "product_id": str(it.product_id),
                        "reason": f"Weight {it.selected_weight} is not sold",
                    }
                )
                continue

            lines.append(
                PricedLine(
                    product_id=product.id,
                    product_name=product.name,
                    selected_weight=it.selected_weight,
                    unit_price=final_price(tier.price, product),
                    quantity=it.quantity,
                )
            )

        if errors:
            raise ValidationFailed({"message": "Order validation failed", "items": errors})
        return lines

    def _owner_view(self, session: Session, order_id: uuid.UUID) -> OrderWithItemsRead:
        order = self.orders.order_repo.get_by_id(session, order_id)
        items = self.orders.order_repo.list_items_for_order(session, order_id)
        return self.orders.build_dto(order, items, owner_view=True)
