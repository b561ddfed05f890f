# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Mirror of an identity-provider user.

    Identity:
      - id: the JWT "sub" claim

    Role:
      - "user" (customer) | "admin" (shop staff)

    Orders reference this row as their owner; the notification
    dispatcher reads email/name from it.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Matches the JWT sub claim",
    )

    email: str = Field(
        unique=True,
        index=True,
    )

    name: str = Field(
        max_length=50,
        description="Display name; first part of email by default",
    )

    phone: str | None = Field(
        default=None,
        max_length=20,
    )

    role: str = Field(
        default="user",
        index=True,
        description="Application role: user | admin",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
