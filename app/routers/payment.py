# app/routers/payment.py
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlmodel import Session

from app.core.auth import require_user
from app.database import get_session
from app.models.user import User
from app.routers.orders import payment_service
from app.schemas.order import OrderWithItemsRead
from app.schemas.payment import PaymentOrderCreate, PaymentOrderRead, PaymentVerify

router = APIRouter(prefix="/payment", tags=["Payment"])


@router.post("/create-order", response_model=PaymentOrderRead)
def create_payment_order(
    payload: PaymentOrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Create a Razorpay order for the checkout widget.

    The amount is computed from the catalog (payload items, or the cart).
    No order is stored until the payment is verified.
    """
    return payment_service.create_payment_order(session, current_user, payload)


@router.post(
    "/verify-payment",
    response_model=OrderWithItemsRead,
    status_code=status.HTTP_201_CREATED,
)
def verify_payment(
    payload: PaymentVerify,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Verify the Razorpay signature and create the paid Online order.

    - Bad signature => 400, nothing stored.
    - A payment id that already produced an order returns that order.
    """
    return payment_service.verify_payment(session, current_user, payload, background_tasks)
