# app/schemas/cart.py
import uuid
from datetime import datetime

from sqlmodel import SQLModel, Field

from app.schemas.order import Weight


class CartItemCreate(SQLModel):
    """
    Payload for adding to cart.

    Adding a (product, weight) pair that is already in the cart merges
    the quantities.
    """

    product_id: uuid.UUID
    selected_weight: Weight
    quantity: int = Field(gt=0)


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart item.
    """

    quantity: int = Field(gt=0)


class CartItemRead(SQLModel):
    """
    Read model for a single cart item, including line_total.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    selected_weight: Weight
    quantity: int
    unit_price: float
    line_total: float
    created_at: datetime


class CartSummary(SQLModel):
    """
    Full cart response model with totals.
    """

    items: list[CartItemRead]
    total_quantity: int
    total_price: float
