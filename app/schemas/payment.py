# app/schemas/payment.py
from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

from app.schemas.order import CheckoutItem, OrderCreate


class PaymentOrderCreate(SQLModel):
    """
    Request a gateway order before opening the checkout widget.

    The amount is computed server-side from `items` (or the cart);
    `amount` sent by the storefront is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    items: list[CheckoutItem] | None = None
    currency: str | None = None
    amount: float | None = None


class PaymentOrderRead(SQLModel):
    intent_id: str
    provider_order_id: str
    amount: float
    amount_subunits: int
    currency: str
    key_id: str | None = None


class PaymentVerify(SQLModel):
    """
    Proof returned by the checkout widget, plus the order to create.
    """

    model_config = ConfigDict(extra="ignore")

    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)
    order_data: OrderCreate
