# app/routers/orders.py
import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlmodel import Session

from app.core.auth import require_admin, require_auth, require_user
from app.database import get_session
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.stats_repo import StatsRepository
from app.repositories.user_repo import UserRepository
from app.schemas.order import (
    DeliveryOtpVerify,
    OrderCreate,
    OrderStats,
    OrderStatusUpdate,
    OrderWithItemsRead,
)
from app.services.inventory_ledger import InventoryLedger
from app.services.notification_service import NotificationDispatcher
from app.services.order_service import OrderService
from app.services.payment_service import PaymentService
from app.services.stats_service import StatsService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
product_repo = ProductRepository()
cart_repo = CartRepository()
user_repo = UserRepository()

ledger = InventoryLedger(order_repo, product_repo)
service = OrderService(order_repo, user_repo, ledger)
payment_service = PaymentService(service, cart_repo, product_repo, NotificationDispatcher())
stats_service = StatsService(StatsRepository())


# -------- Customer endpoints --------


@router.post(
    "",
    response_model=OrderWithItemsRead,
    status_code=status.HTTP_201_CREATED,
)
def create_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Place a cash-on-delivery order.

    Items default to the server-side cart when omitted. Prices are taken
    from the catalog, not from the payload. Online orders are created by
    POST /payment/verify-payment instead.
    """
    return payment_service.checkout(session, current_user, payload, background_tasks)


@router.get("", response_model=list[OrderWithItemsRead])
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated customer's orders, newest first.
    """
    return service.list_user_orders(session, current_user, skip, limit)


@router.post("/verify-delivery-otp", response_model=OrderWithItemsRead)
def verify_delivery_otp(
    payload: DeliveryOtpVerify,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Confirm delivery with the order's OTP (owner or admin).
    """
    return service.confirm_delivery_with_otp(session, current_user, payload)


# -------- Admin endpoints --------


@router.get(
    "/admin/all",
    response_model=list[OrderWithItemsRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
):
    """
    List all orders with items and customer details (admin only).
    """
    return service.list_all_orders(session, skip, limit)


@router.get(
    "/admin/stats",
    response_model=OrderStats,
    dependencies=[Depends(require_admin)],
)
def order_stats(session: Session = Depends(get_session)):
    return stats_service.get_order_stats(session)


@router.patch(
    "/{order_id}/status",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
):
    """
    Update order status (admin only).

      pending -> confirmed -> preparing -> out_for_delivery -> delivered

      any non-terminal status -> cancelled

      delivered, cancelled -> (no change)

    Moving into delivered decrements stock once per order.
    """
    return service.update_status(session, order_id, payload)


# -------- Owner or admin --------


@router.get("/{order_id}", response_model=OrderWithItemsRead)
def get_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Get a single order with items. Customers only see their own.
    """
    return service.get_order(session, current_user, order_id)


@router.post("/{order_id}/cancel", response_model=OrderWithItemsRead)
def cancel_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Cancel one of the caller's orders unless it is delivered or cancelled.
    """
    return service.cancel(session, order_id, current_user)
