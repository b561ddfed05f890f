# app/models/product.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Catalog entry (a pickle, sweet or spice powder).

    Price and stock live per weight tier in ProductPrice.
    The discount applies uniformly to every tier of the product and is
    only honoured inside its optional [start, end] window; see
    app/services/pricing.py.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    name: str = Field(
        max_length=100,
        min_length=2,
        index=True,
    )

    description: str = Field(default="")

    category: str = Field(
        max_length=50,
        index=True,
    )

    discount: float = Field(
        default=0,
        ge=0,
        le=100,
        description="Discount percentage, same for all weights",
    )
    is_discount_active: bool = Field(default=False)
    discount_start_date: datetime | None = Field(default=None)
    discount_end_date: datetime | None = Field(default=None)

    is_available: bool = Field(
        default=True,
        index=True,
        description="Whether this product can be ordered",
    )

    expiry_days: int = Field(default=7, ge=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class ProductPrice(SQLModel, table=True):
    """
    Weight tier of a product: price and stock for 250g / 500g / 1kg.

    (product_id, weight) is unique; stock never goes below zero.
    """

    __tablename__ = "product_prices"
    __table_args__ = (
        UniqueConstraint("product_id", "weight", name="uq_product_prices_product_weight"),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
    )

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
    )

    # 250g | 500g | 1kg
    weight: str = Field(max_length=10)

    price: float = Field(ge=0)

    stock: int = Field(default=0, ge=0)
