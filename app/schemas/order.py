# app/schemas/order.py
import uuid
from datetime import date, datetime
from typing import Literal, get_args

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

# Wire values: must match exactly what is persisted.
OrderStatus = Literal[
    "pending",
    "confirmed",
    "preparing",
    "out_for_delivery",
    "delivered",
    "cancelled",
]
PaymentMethod = Literal["COD", "Online"]
PaymentStatus = Literal["Pending", "Paid", "Failed", "Refund Pending"]
Weight = Literal["250g", "500g", "1kg"]

ORDER_STATUSES: tuple[str, ...] = get_args(OrderStatus)


class AddressIn(SQLModel):
    """
    Delivery address captured at checkout (snapshotted on the order).
    """

    model_config = ConfigDict(extra="ignore")

    street: str
    city: str
    state: str
    pincode: str

    @field_validator("street", "city", "state", "pincode")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class CheckoutItem(SQLModel):
    """
    A line the client wants to buy.

    unit_price / total_price are echoed back from the storefront and are
    informational only; the backend reprices every line from the catalog.
    """

    model_config = ConfigDict(extra="ignore")

    product_id: uuid.UUID
    selected_weight: Weight
    quantity: int = Field(gt=0)
    unit_price: float | None = None
    total_price: float | None = None


class OrderCreate(SQLModel):
    """
    Checkout payload.

    User provides:
      - items (optional; defaults to the user's server-side cart)
      - delivery address
      - delivery date / time hints
      - payment method

    Backend derives:
      - user_id from token
      - status = 'pending'
      - payment_status from the payment method / gateway proof
      - unit prices and total_amount from the catalog

    `address` and `items` are optional at schema level so that missing
    ones produce a 400 from the service rather than a 422.
    """

    model_config = ConfigDict(extra="ignore")

    items: list[CheckoutItem] | None = None
    address: AddressIn | None = None
    delivery_date: date | None = None
    delivery_time: str | None = None
    payment_method: PaymentMethod = "COD"

    # Informational echoes from the storefront, never trusted
    payment_status: str | None = None
    total_amount: float | None = None

    @field_validator("delivery_time")
    @classmethod
    def normalize_time(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderAddress(SQLModel):
    street: str
    city: str
    state: str
    pincode: str


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str | None
    selected_weight: Weight
    unit_price: float
    quantity: int
    line_total: float


class OrderCustomer(SQLModel):
    id: uuid.UUID
    name: str
    email: str
    phone: str | None = None


class OrderRead(SQLModel):
    """
    Representation of an order without items.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    address: OrderAddress
    delivery_date: date | None
    delivery_time: str | None
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    total_amount: float
    stock_decremented: bool
    created_at: datetime


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items.

    - delivery_otp is only filled for the owning customer.
    - customer is only filled on admin views.
    """

    items: list[OrderItemRead]
    delivery_otp: str | None = None
    customer: OrderCustomer | None = None


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.

    Kept as plain str so unknown values surface as InvalidStatus (400).
    """

    model_config = ConfigDict(extra="forbid")

    status: str


class DeliveryOtpVerify(SQLModel):
    model_config = ConfigDict(extra="forbid")

    order_id: uuid.UUID
    otp: str = Field(schema_extra={"pattern": r"^[0-9]{6}$"})


class OrderStatusBucket(SQLModel):
    status: OrderStatus
    count: int
    total_amount: float


class OrderStats(SQLModel):
    """
    Admin dashboard numbers; revenue excludes cancelled orders.
    """

    total_orders: int
    total_revenue: float
    by_status: list[OrderStatusBucket]
