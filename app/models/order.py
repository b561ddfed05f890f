# app/models/order.py
import uuid
from datetime import datetime, date, timezone

from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    Customer order.

    Lifecycle (see app/services/order_service.py):
      pending -> confirmed -> preparing -> out_for_delivery -> delivered
      any non-terminal state -> cancelled

    The delivery address is a snapshot taken at checkout; later profile
    edits never touch it. Orders are never deleted.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    # Address snapshot
    street: str
    city: str
    state: str
    pincode: str

    # Display-only scheduling hints
    delivery_date: date | None = Field(default=None)
    delivery_time: str | None = Field(default=None, max_length=50)

    # pending | confirmed | preparing | out_for_delivery | delivered | cancelled
    status: str = Field(
        default="pending",
        index=True,
    )

    # COD | Online (immutable)
    payment_method: str = Field(default="COD")

    # Pending | Paid | Failed | Refund Pending
    payment_status: str = Field(default="Pending", index=True)

    # Flips to True at most once; guarded by a conditional UPDATE.
    stock_decremented: bool = Field(default=False)

    total_amount: float = Field(
        ge=0,
        description="Sum of line totals, computed server-side at checkout",
    )

    # Gateway references (Online only)
    razorpay_order_id: str | None = Field(default=None, index=True)
    razorpay_payment_id: str | None = Field(default=None, unique=True)

    delivery_otp: str | None = Field(default=None, max_length=6)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order.

    product_id carries no FK: catalog rows may be deleted after the
    order was placed, the line (and its name snapshot) must survive.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    product_id: uuid.UUID = Field(index=True)

    product_name: str | None = None

    # 250g | 500g | 1kg
    selected_weight: str = Field(max_length=10)

    unit_price: float = Field(
        ge=0,
        description="Final unit price at time of order",
    )

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )
