# app/services/order_service.py
import logging
import secrets
import uuid
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.errors import (
    IllegalTransition,
    InvalidStatus,
    NotFound,
    StorageError,
    ValidationFailed,
)
from app.core.locks import KeyedLocks, order_locks
from app.models.order import Order, OrderItem
from app.models.user import User
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import UserRepository
from app.schemas.order import (
    ORDER_STATUSES,
    AddressIn,
    DeliveryOtpVerify,
    OrderAddress,
    OrderCustomer,
    OrderItemRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
)
from app.services.inventory_ledger import InventoryLedger
from app.services.payment_service import payment_status_after_cancel

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"delivered", "cancelled"}

# Forward-only lifecycle; skipping ahead is allowed, going back is not.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "preparing", "out_for_delivery", "delivered", "cancelled"},
    "confirmed": {"preparing", "out_for_delivery", "delivered", "cancelled"},
    "preparing": {"out_for_delivery", "delivered", "cancelled"},
    "out_for_delivery": {"delivered", "cancelled"},
    "delivered": set(),
    "cancelled": set(),
}


def generate_delivery_otp() -> str:
    return f"{secrets.randbelow(10**6):06d}"


class OrderService:
    """
    Order store: persistence and lifecycle of orders.

    Responsibilities:
      - Insert orders built by the payment service (checkout)
      - Enforce the status state machine (admin updates)
      - Customer cancellation with the payment-status table
      - Delivery confirmation by OTP
      - Trigger the one-time stock decrement on delivery

    Every mutation of an existing order runs under a per-order lock,
    re-reads the row (FOR UPDATE where supported) and commits the status,
    payment status and stock changes as one transaction.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        user_repo: UserRepository,
        ledger: InventoryLedger,
        locks: KeyedLocks = order_locks,
    ):
        self.order_repo = order_repo
        self.user_repo = user_repo
        self.ledger = ledger
        self.locks = locks

    # -------- Creation (called by PaymentService) --------

    def create_order(
        self,
        session: Session,
        *,
        user_id: uuid.UUID,
        address: AddressIn,
        delivery_date: date | None,
        delivery_time: str | None,
        items: list[OrderItem],
        payment_method: str,
        payment_status: str,
        razorpay_order_id: str | None = None,
        razorpay_payment_id: str | None = None,
    ) -> tuple[Order, list[OrderItem]]:
        """
        Insert the order and its lines without committing.

        total_amount is always the sum of the given lines.
        """
        total_amount = round(sum(it.unit_price * it.quantity for it in items), 2)

        order = Order(
            user_id=user_id,
            street=address.street,
            city=address.city,
            state=address.state,
            pincode=address.pincode,
            delivery_date=delivery_date,
            delivery_time=delivery_time,
            status="pending",
            payment_method=payment_method,
            payment_status=payment_status,
            total_amount=total_amount,
            razorpay_order_id=razorpay_order_id,
            razorpay_payment_id=razorpay_payment_id,
            delivery_otp=generate_delivery_otp(),
        )
        order = self.order_repo.create_order(session, order)

        for it in items:
            it.order_id = order.id
        items = self.order_repo.create_items(session, items)
        return order, items

    # -------- User-facing operations --------

    def list_user_orders(
        self,
        session: Session,
        user: User,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderWithItemsRead]:
        """
        List orders of the given user, newest first, with items.
        """
        orders = self.order_repo.list_for_user(session, user.id, skip, limit)
        items_map = self.order_repo.list_items_for_orders(session, [o.id for o in orders])
        return [
            self.build_dto(o, items_map[o.id], owner_view=True)
            for o in orders
        ]

    def get_order(
        self,
        session: Session,
        user: User,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get a single order with items.

        - Customers only see their own orders (404 otherwise).
        - Admins see any order, with customer details.
        """
        order = self.order_repo.get_by_id(session, order_id)
        is_owner = order is not None and order.user_id == user.id
        if not order or (not is_owner and user.role != "admin"):
            raise NotFound("Order not found")

        items = self.order_repo.list_items_for_order(session, order.id)
        customer = None
        if not is_owner:
            customer = self._customer(self.user_repo.get_by_id(session, order.user_id))
        return self.build_dto(order, items, owner_view=is_owner, customer=customer)

    def cancel(
        self,
        session: Session,
        order_id: uuid.UUID,
        user: User,
    ) -> OrderWithItemsRead:
        """
        Customer cancellation.

        - 404 if the order is missing or belongs to someone else.
        - 400 if it is already delivered or cancelled.
        - Payment status follows the cancellation table; stock is never touched.
        """
        with self._mutating(session, order_id, "cancel"):
            order = self.order_repo.get_for_update(session, order_id)
            if not order or order.user_id != user.id:
                raise NotFound("Order not found")
            if order.status in TERMINAL_STATUSES:
                raise IllegalTransition("Order cannot be cancelled")

            self._transition(session, order, "cancelled")

        return self._reload_dto(session, order_id, owner_view=True)

    def confirm_delivery_with_otp(
        self,
        session: Session,
        user: User,
        payload: DeliveryOtpVerify,
    ) -> OrderWithItemsRead:
        """
        Alternate delivery confirmation: the customer's OTP marks the order
        delivered through the same transition as the admin path, so stock is
        decremented at most once whichever path (or both) runs.

        - 404 if missing, or not the caller's order (admins may confirm any).
        - 400 if cancelled, or if the OTP does not match.
        - Already delivered => returned unchanged.
        """
        order_id = payload.order_id
        with self._mutating(session, order_id, "confirm delivery of"):
            order = self.order_repo.get_for_update(session, order_id)
            if not order or (user.role != "admin" and order.user_id != user.id):
                raise NotFound("Order not found")
            if order.status == "cancelled":
                raise IllegalTransition("Cancelled orders cannot be delivered")
            if not order.delivery_otp or not secrets.compare_digest(
                order.delivery_otp.encode(), payload.otp.encode()
            ):
                raise ValidationFailed("Invalid delivery OTP")

            if order.status != "delivered":
                self._transition(session, order, "delivered")

        return self._reload_dto(session, order_id, owner_view=order.user_id == user.id)

    # -------- Admin operations --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderWithItemsRead]:
        """
        List all orders (admin only) with items and customer details.
        """
        orders = self.order_repo.list_all(session, skip, limit)
        items_map = self.order_repo.list_items_for_orders(session, [o.id for o in orders])
        users = self.user_repo.get_many(session, list({o.user_id for o in orders}))
        return [
            self.build_dto(o, items_map[o.id], customer=self._customer(users.get(o.user_id)))
            for o in orders
        ]

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
    ) -> OrderWithItemsRead:
        """
        Admin status update with the order state machine:

          pending -> confirmed -> preparing -> out_for_delivery -> delivered
          any non-terminal state -> cancelled
          delivered, cancelled -> (nothing; delivered -> delivered is a no-op)

        Into delivered: stock decremented once, COD becomes Paid.
        Into cancelled: payment status per the cancellation table.
        """
        new_status = payload.status
        if new_status not in ORDER_STATUSES:
            raise InvalidStatus(f"Invalid status: {new_status}")

        with self._mutating(session, order_id, "update"):
            order = self.order_repo.get_for_update(session, order_id)
            if not order:
                raise NotFound("Order not found")
            self._transition(session, order, new_status)

        return self._reload_dto(session, order_id)

    # -------- State machine --------

    def _transition(self, session: Session, order: Order, new_status: str) -> bool:
        """
        Apply one status change to a locked order. No commit.

        Returns False for the allowed no-ops (same non-terminal status,
        delivered -> delivered).
        """
        current = order.status

        if new_status == current and current != "cancelled":
            return False
        if current in TERMINAL_STATUSES:
            raise IllegalTransition(f"Order is already {current}")
        if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise IllegalTransition(f"Invalid status transition: {current} -> {new_status}")

        if new_status == "delivered":
            self.ledger.apply_once(session, order)
            if order.payment_method == "COD":
                order.payment_status = "Paid"
        elif new_status == "cancelled":
            order.payment_status = payment_status_after_cancel(
                order.payment_method, order.payment_status
            )

        order.status = new_status
        self.order_repo.update_order(session, order)
        logger.info(
            "Order %s: %s -> %s (payment %s)",
            order.id,
            current,
            new_status,
            order.payment_status,
        )
        return True

    @contextmanager
    def _mutating(self, session: Session, order_id: uuid.UUID, action: str) -> Iterator[None]:
        """
        Per-order critical section + transaction.

        Commits on success, rolls back on any error. Storage failures
        become StorageError (500) after logging the order id.
        """
        with self.locks.hold(order_id):
            try:
                yield
                session.commit()
            except HTTPException:
                session.rollback()
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Order %s: could not %s order, rolled back", order_id, action)
                raise StorageError(
                    f"Could not {action} order {order_id}; no changes were saved"
                ) from exc

    # -------- Helper DTO builders --------

    def _reload_dto(
        self,
        session: Session,
        order_id: uuid.UUID,
        owner_view: bool = False,
    ) -> OrderWithItemsRead:
        order = self.order_repo.get_by_id(session, order_id)
        items = self.order_repo.list_items_for_order(session, order_id)
        return self.build_dto(order, items, owner_view=owner_view)

    @staticmethod
    def _customer(user: User | None) -> OrderCustomer | None:
        if user is None:
            return None
        return OrderCustomer(id=user.id, name=user.name, email=user.email, phone=user.phone)

    def build_dto(
        self,
        order: Order,
        items: list[OrderItem],
        owner_view: bool = False,
        customer: OrderCustomer | None = None,
    ) -> OrderWithItemsRead:
        """
        Compose OrderWithItemsRead from ORM models, including line totals.
        """
        item_dtos = [
            OrderItemRead(
                id=it.id,
                product_id=it.product_id,
                product_name=it.product_name,
                selected_weight=it.selected_weight,
                unit_price=it.unit_price,
                quantity=it.quantity,
                line_total=round(it.unit_price * it.quantity, 2),
            )
            for it in items
        ]

        return OrderWithItemsRead(
            id=order.id,
            user_id=order.user_id,
            address=OrderAddress(
                street=order.street,
                city=order.city,
                state=order.state,
                pincode=order.pincode,
            ),
            delivery_date=order.delivery_date,
            delivery_time=order.delivery_time,
            status=order.status,  # Literal
            payment_method=order.payment_method,  # Literal
            payment_status=order.payment_status,  # Literal
            total_amount=order.total_amount,
            stock_decremented=order.stock_decremented,
            created_at=order.created_at,
            items=item_dtos,
            delivery_otp=order.delivery_otp if owner_view else None,
            customer=customer,
        )
