"""
Ruchulu backend test configuration and fixtures

This module provides:
- Test environment (set before the app is imported)
- A file-backed SQLite engine per test, wired into the app via get_session
- Seed users, products and JWTs
- Service objects wired with a fake payment gateway
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import requests

# Set test environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test_secret_key_for_testing_only_32chars!"
os.environ["JWT_ALG"] = "HS256"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["ADMIN_EMAIL"] = "orders@ruchulu.test"
os.environ["SMTP_HOST"] = ""

from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel, select

from app.core.locks import KeyedLocks
from app.core.payment_gateway import PaymentIntent, PaymentProof
from app.database import build_engine, get_session
from app.main import app as fastapi_app
from app.models.product import Product, ProductPrice
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository
from app.repositories.user_repo import UserRepository
from app.schemas.order import AddressIn, CheckoutItem, OrderCreate
from app.services.inventory_ledger import InventoryLedger
from app.services.notification_service import NotificationDispatcher
from app.services.order_service import OrderService
from app.services.payment_service import PaymentService

ADDRESS = {
    "street": "12-2-34, Temple Street",
    "city": "Vijayawada",
    "state": "Andhra Pradesh",
    "pincode": "520001",
}


class FakeGateway:
    """
    Stands in for Razorpay: any signature equal to 'valid' checks out, and
    `charged` maps payment ids to the paise the payment captured.
    """

    key_id = "rzp_test_key"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.intents: list[tuple[float, str]] = []
        self.charged: dict[str, int] = {}

    def create_payment_intent(self, amount: float, currency: str) -> PaymentIntent:
        if self.fail:
            raise requests.ConnectionError("gateway down")
        self.intents.append((amount, currency))
        return PaymentIntent(
            intent_id="rcpt_test",
            provider_order_id="order_test123",
            amount_subunits=int(round(amount * 100)),
            currency=currency,
        )

    def verify_signature(self, proof: PaymentProof) -> bool:
        return proof.signature == "valid"

    def paid_amount_subunits(self, proof: PaymentProof) -> int | None:
        if self.fail:
            raise requests.ConnectionError("gateway down")
        return self.charged.get(proof.payment_id)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'shop.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def stock_of(engine):
    """Read a tier's stock through a fresh session."""

    def _stock(product: Product, weight: str) -> int:
        with Session(engine) as s:
            tier = s.exec(
                select(ProductPrice).where(
                    ProductPrice.product_id == product.id,
                    ProductPrice.weight == weight,
                )
            ).one()
            return tier.stock

    return _stock


# =============================================================================
# Seed data
# =============================================================================


def _make_user(session: Session, email: str, name: str, role: str = "user") -> User:
    user = User(id=uuid.uuid4(), email=email, name=name, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def customer(session):
    return _make_user(session, "lakshmi@example.com", "Lakshmi")


@pytest.fixture
def other_customer(session):
    return _make_user(session, "ravi@example.com", "Ravi")


@pytest.fixture
def admin(session):
    return _make_user(session, "owner@ruchulu.test", "Owner", role="admin")


def _make_product(session: Session, tiers: list[tuple[str, float, int]], **fields) -> Product:
    product = Product(**fields)
    session.add(product)
    session.flush()
    session.add_all(
        [
            ProductPrice(product_id=product.id, weight=w, price=p, stock=s)
            for w, p, s in tiers
        ]
    )
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture
def avakaya(session):
    """No discount. 250g: 100 (10 left), 500g: 180 (5 left), 1kg: 340 (2 left)."""
    return _make_product(
        session,
        [("250g", 100, 10), ("500g", 180, 5), ("1kg", 340, 2)],
        name="Mango Avakaya",
        category="Veg pickles",
    )


@pytest.fixture
def gongura(session):
    """20% off, no window. 250g: 250 -> 200, 500g: 480 -> 384."""
    return _make_product(
        session,
        [("250g", 250, 8), ("500g", 480, 4)],
        name="Gongura Chicken",
        category="Non veg pickles",
        discount=20,
        is_discount_active=True,
    )


# =============================================================================
# Auth
# =============================================================================


def make_token(user: User, expires_in: int = 3600) -> str:
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user)}"}

    return _headers


# =============================================================================
# Notifications
# =============================================================================


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture every order email instead of talking to SMTP."""
    sent: list[dict] = []

    def fake_send(**kwargs):
        sent.append(kwargs)

    monkeypatch.setattr("app.services.notification_service.send_email", fake_send)
    return sent


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def client(engine, sent_emails):
    def _get_session():
        with Session(engine) as session:
            yield session

    fastapi_app.dependency_overrides[get_session] = _get_session
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def services(sent_emails, gateway):
    order_repo = OrderRepository()
    product_repo = ProductRepository()
    ledger = InventoryLedger(order_repo, product_repo)
    orders = OrderService(order_repo, UserRepository(), ledger, locks=KeyedLocks())
    payments = PaymentService(
        orders,
        CartRepository(),
        product_repo,
        NotificationDispatcher(),
        gateway_provider=lambda: gateway,
    )
    return SimpleNamespace(
        orders=orders,
        payments=payments,
        ledger=ledger,
        order_repo=order_repo,
        product_repo=product_repo,
    )


@pytest.fixture
def place_order(session, services):
    """
    Place an order through checkout.

    lines: [(product, weight, quantity), ...]
    """

    def _place(user, lines, payment_method="COD", proof=None):
        payload = OrderCreate(
            items=[
                CheckoutItem(product_id=p.id, selected_weight=w, quantity=q)
                for p, w, q in lines
            ],
            address=AddressIn(**ADDRESS),
            payment_method=payment_method,
        )
        return services.payments.checkout(session, user, payload, proof=proof)

    return _place
