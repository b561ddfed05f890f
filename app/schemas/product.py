# app/schemas/product.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator, model_validator
from sqlmodel import SQLModel, Field

from app.schemas.order import Weight

Category = Literal[
    "Shop all",
    "Veg pickles",
    "Non veg pickles",
    "Sweets",
    "Hots",
    "Powders / spices",
]


class PriceTierIn(SQLModel):
    """
    One weight tier on create/update.
    """

    model_config = ConfigDict(extra="forbid")

    weight: Weight
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)


def _unique_weights(prices: list[PriceTierIn]) -> list[PriceTierIn]:
    seen: set[str] = set()
    for tier in prices:
        if tier.weight in seen:
            raise ValueError(f"duplicate weight tier: {tier.weight}")
        seen.add(tier.weight)
    return prices


class ProductCreate(SQLModel):
    """
    Payload for creating a product.

    - at least one weight tier
    - weights unique within the product
    - discount window bounds are optional; end must not precede start
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=100, min_length=2)
    description: str = ""
    category: Category
    prices: list[PriceTierIn] = Field(min_length=1)
    discount: float = Field(default=0, ge=0, le=100)
    is_discount_active: bool = False
    discount_start_date: datetime | None = None
    discount_end_date: datetime | None = None
    is_available: bool = True
    expiry_days: int = Field(default=7, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("prices")
    @classmethod
    def validate_prices(cls, v: list[PriceTierIn]) -> list[PriceTierIn]:
        return _unique_weights(v)

    @model_validator(mode="after")
    def validate_window(self) -> "ProductCreate":
        if (
            self.discount_start_date
            and self.discount_end_date
            and self.discount_end_date < self.discount_start_date
        ):
            raise ValueError("discount_end_date must be after discount_start_date")
        return self


class ProductUpdate(SQLModel):
    """
    Partial update payload for products.
    All fields are optional; `prices`, when given, replaces every tier.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, max_length=100)
    description: str | None = None
    category: Category | None = None
    prices: list[PriceTierIn] | None = Field(default=None, min_length=1)
    discount: float | None = Field(default=None, ge=0, le=100)
    is_discount_active: bool | None = None
    discount_start_date: datetime | None = None
    discount_end_date: datetime | None = None
    is_available: bool | None = None
    expiry_days: int | None = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("prices")
    @classmethod
    def validate_prices(cls, v: list[PriceTierIn] | None) -> list[PriceTierIn] | None:
        if v is None:
            return v
        return _unique_weights(v)


class PriceTierRead(SQLModel):
    weight: Weight
    price: float
    stock: int
    final_price: float


class ProductRead(SQLModel):
    """
    Product representation for clients; final prices are computed at
    read time because the discount window is time dependent.
    """

    id: uuid.UUID
    name: str
    description: str
    category: str
    prices: list[PriceTierRead]
    discount: float
    is_discount_active: bool
    discount_start_date: datetime | None
    discount_end_date: datetime | None
    discount_valid: bool
    is_available: bool
    expiry_days: int
    created_at: datetime
