"""
Checkout over HTTP: COD orders, Razorpay-verified Online orders and the
gateway order used by the checkout widget.
"""

import hashlib
import hmac
import os

import pytest
import razorpay
from sqlmodel import Session, func, select

from app.core.payment_gateway import RazorpayGateway
from app.models.cart import CartItem
from app.models.order import Order
from app.routers.orders import payment_service

API = "/api/v1"

ADDRESS = {
    "street": "12-2-34, Temple Street",
    "city": "Vijayawada",
    "state": "Andhra Pradesh",
    "pincode": "520001",
}


def razorpay_signature(order_id: str, payment_id: str) -> str:
    secret = os.environ["RAZORPAY_KEY_SECRET"].encode()
    return hmac.new(secret, f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def count_orders(engine) -> int:
    with Session(engine) as s:
        return s.exec(select(func.count()).select_from(Order)).one()


def line(product, weight, quantity, **extra):
    return {"product_id": str(product.id), "selected_weight": weight, "quantity": quantity, **extra}


class TestCodCheckout:

    def test_cod_order_is_created_pending(
        self, client, auth_headers, customer, avakaya, gongura, sent_emails, stock_of
    ):
        payload = {
            "items": [line(avakaya, "250g", 2), line(gongura, "500g", 1)],
            "address": ADDRESS,
            "delivery_date": "2026-04-02",
            "delivery_time": "Evening",
            "payment_method": "COD",
        }

        res = client.post(f"{API}/orders", json=payload, headers=auth_headers(customer))

        assert res.status_code == 201
        body = res.json()
        assert body["status"] == "pending"
        assert body["payment_method"] == "COD"
        assert body["payment_status"] == "Pending"
        assert body["stock_decremented"] is False
        assert body["total_amount"] == 584  # 2 x 100 + 384 (480 at 20% off)
        assert body["address"]["city"] == "Vijayawada"
        assert body["delivery_time"] == "Evening"
        assert len(body["delivery_otp"]) == 6
        assert {it["product_name"] for it in body["items"]} == {"Mango Avakaya", "Gongura Chicken"}
        assert stock_of(avakaya, "250g") == 10

        recipients = {mail["to_email"] for mail in sent_emails}
        assert recipients == {"lakshmi@example.com", "orders@ruchulu.test"}

    def test_client_prices_are_ignored(self, client, auth_headers, customer, avakaya):
        payload = {
            "items": [line(avakaya, "500g", 1, unit_price=1, total_price=1)],
            "address": ADDRESS,
            "total_amount": 1,
        }

        res = client.post(f"{API}/orders", json=payload, headers=auth_headers(customer))

        assert res.status_code == 201
        assert res.json()["total_amount"] == 180
        assert res.json()["items"][0]["unit_price"] == 180

    def test_missing_address_is_rejected(self, client, engine, auth_headers, customer, avakaya):
        res = client.post(
            f"{API}/orders",
            json={"items": [line(avakaya, "250g", 1)]},
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0

    def test_empty_order_is_rejected(self, client, engine, auth_headers, customer):
        res = client.post(
            f"{API}/orders",
            json={"items": [], "address": ADDRESS},
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0

    def test_unknown_product_lists_offending_line(
        self, client, engine, auth_headers, customer, avakaya
    ):
        payload = {
            "items": [
                line(avakaya, "250g", 1),
                {"product_id": "00000000-0000-0000-0000-000000000001", "selected_weight": "1kg", "quantity": 1},
            ],
            "address": ADDRESS,
        }

        res = client.post(f"{API}/orders", json=payload, headers=auth_headers(customer))

        assert res.status_code == 400
        detail = res.json()["detail"]
        assert detail["items"][0]["product_id"] == "00000000-0000-0000-0000-000000000001"
        assert count_orders(engine) == 0

    def test_unsold_weight_is_rejected(self, client, auth_headers, customer, gongura):
        res = client.post(
            f"{API}/orders",
            json={"items": [line(gongura, "1kg", 1)], "address": ADDRESS},
            headers=auth_headers(customer),
        )

        assert res.status_code == 400

    def test_online_requires_gateway_verification(
        self, client, engine, auth_headers, customer, avakaya
    ):
        res = client.post(
            f"{API}/orders",
            json={"items": [line(avakaya, "250g", 1)], "address": ADDRESS, "payment_method": "Online"},
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0

    def test_cart_is_used_and_cleared(self, client, engine, auth_headers, customer, avakaya):
        headers = auth_headers(customer)
        client.post(f"{API}/cart", json=line(avakaya, "500g", 2), headers=headers)

        res = client.post(f"{API}/orders", json={"address": ADDRESS}, headers=headers)

        assert res.status_code == 201
        assert res.json()["total_amount"] == 360
        with Session(engine) as s:
            assert s.exec(select(CartItem)).all() == []

    def test_empty_cart_without_items_is_rejected(self, client, auth_headers, customer):
        res = client.post(f"{API}/orders", json={"address": ADDRESS}, headers=auth_headers(customer))
        assert res.status_code == 400

    def test_email_failure_does_not_fail_the_order(
        self, client, engine, auth_headers, customer, avakaya, monkeypatch
    ):
        def broken_send(**kwargs):
            raise ConnectionRefusedError("smtp down")

        monkeypatch.setattr("app.services.notification_service.send_email", broken_send)

        res = client.post(
            f"{API}/orders",
            json={"items": [line(avakaya, "250g", 1)], "address": ADDRESS},
            headers=auth_headers(customer),
        )

        assert res.status_code == 201
        assert count_orders(engine) == 1

    def test_requires_customer_token(self, client, auth_headers, admin, avakaya):
        payload = {"items": [line(avakaya, "250g", 1)], "address": ADDRESS}

        assert client.post(f"{API}/orders", json=payload).status_code == 401
        assert (
            client.post(f"{API}/orders", json=payload, headers=auth_headers(admin)).status_code
            == 403
        )


@pytest.fixture
def razorpay_payments(monkeypatch):
    """
    Real Razorpay signature checks, with payment lookups answered from a dict:
    payment id -> {"order_id", "status", "amount"} as the API returns them.
    """
    payments: dict[str, dict] = {}
    gateway = RazorpayGateway(os.environ["RAZORPAY_KEY_ID"], os.environ["RAZORPAY_KEY_SECRET"])

    def fetch(payment_id, data=None, **kwargs):
        if payment_id not in payments:
            raise razorpay.errors.BadRequestError("The id provided does not exist")
        return {"id": payment_id, **payments[payment_id]}

    monkeypatch.setattr(gateway.client.payment, "fetch", fetch)
    monkeypatch.setattr(payment_service, "gateway_provider", lambda: gateway)
    return payments


class TestVerifyPayment:

    def _payload(self, items, payment_id="pay_OK1", signature=None):
        return {
            "razorpay_order_id": "order_OK1",
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature or razorpay_signature("order_OK1", payment_id),
            "order_data": {
                "items": items,
                "address": ADDRESS,
                "payment_method": "Online",
            },
        }

    def test_valid_signature_creates_paid_order(
        self, client, engine, auth_headers, customer, avakaya, razorpay_payments
    ):
        razorpay_payments["pay_OK1"] = {"order_id": "order_OK1", "status": "captured", "amount": 34000}

        res = client.post(
            f"{API}/payment/verify-payment",
            json=self._payload([line(avakaya, "1kg", 1)]),
            headers=auth_headers(customer),
        )

        assert res.status_code == 201
        body = res.json()
        assert body["payment_method"] == "Online"
        assert body["payment_status"] == "Paid"
        assert body["status"] == "pending"
        assert body["total_amount"] == 340
        with Session(engine) as s:
            order = s.exec(select(Order)).one()
            assert order.razorpay_order_id == "order_OK1"
            assert order.razorpay_payment_id == "pay_OK1"

    def test_forged_signature_creates_nothing(
        self, client, engine, auth_headers, customer, avakaya, sent_emails, razorpay_payments
    ):
        razorpay_payments["pay_OK1"] = {"order_id": "order_OK1", "status": "captured", "amount": 34000}

        res = client.post(
            f"{API}/payment/verify-payment",
            json=self._payload([line(avakaya, "1kg", 1)], signature="deadbeef" * 8),
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0
        assert sent_emails == []

    def test_items_worth_more_than_the_charge_are_rejected(
        self, client, engine, auth_headers, customer, avakaya, sent_emails, razorpay_payments
    ):
        # Paid for a single 250g jar (100), then asks for 2 x 1kg + 5 x 500g.
        razorpay_payments["pay_OK1"] = {"order_id": "order_OK1", "status": "captured", "amount": 10000}

        res = client.post(
            f"{API}/payment/verify-payment",
            json=self._payload([line(avakaya, "1kg", 2), line(avakaya, "500g", 5)]),
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0
        assert sent_emails == []

    def test_payment_for_another_gateway_order_is_rejected(
        self, client, engine, auth_headers, customer, avakaya, razorpay_payments
    ):
        razorpay_payments["pay_OK1"] = {"order_id": "order_OTHER", "status": "captured", "amount": 34000}

        res = client.post(
            f"{API}/payment/verify-payment",
            json=self._payload([line(avakaya, "1kg", 1)]),
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0

    def test_failed_payment_is_rejected(
        self, client, engine, auth_headers, customer, avakaya, razorpay_payments
    ):
        razorpay_payments["pay_OK1"] = {"order_id": "order_OK1", "status": "failed", "amount": 34000}

        res = client.post(
            f"{API}/payment/verify-payment",
            json=self._payload([line(avakaya, "1kg", 1)]),
            headers=auth_headers(customer),
        )

        assert res.status_code == 400
        assert count_orders(engine) == 0

    def test_unknown_payment_is_bad_gateway(
        self, client, engine, auth_headers, customer, avakaya, razorpay_payments
    ):
        res = client.post(
            f"{API}/payment/verify-payment",
            json=self._payload([line(avakaya, "1kg", 1)]),
            headers=auth_headers(customer),
        )

        assert res.status_code == 502
        assert count_orders(engine) == 0

    def test_same_payment_twice_yields_one_order(
        self, client, engine, auth_headers, customer, avakaya, sent_emails, razorpay_payments
    ):
        razorpay_payments["pay_OK1"] = {"order_id": "order_OK1", "status": "captured", "amount": 34000}
        headers = auth_headers(customer)
        payload = self._payload([line(avakaya, "1kg", 1)])

        first = client.post(f"{API}/payment/verify-payment", json=payload, headers=headers)
        second = client.post(f"{API}/payment/verify-payment", json=payload, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["id"] == first.json()["id"]
        assert count_orders(engine) == 1
        assert len(sent_emails) == 2  # customer + shop, once

    def test_payment_method_is_forced_online(
        self, client, auth_headers, customer, avakaya, razorpay_payments
    ):
        razorpay_payments["pay_OK2"] = {"order_id": "order_OK1", "status": "authorized", "amount": 34000}
        payload = self._payload([line(avakaya, "1kg", 1)], payment_id="pay_OK2")
        payload["order_data"]["payment_method"] = "COD"

        res = client.post(f"{API}/payment/verify-payment", json=payload, headers=auth_headers(customer))

        assert res.status_code == 201
        assert res.json()["payment_method"] == "Online"


class TestCreatePaymentOrder:

    def test_amount_comes_from_catalog(
        self, client, auth_headers, customer, gongura, gateway, monkeypatch
    ):
        monkeypatch.setattr(payment_service, "gateway_provider", lambda: gateway)

        res = client.post(
            f"{API}/payment/create-order",
            json={"items": [line(gongura, "250g", 3)], "amount": 1},
            headers=auth_headers(customer),
        )

        assert res.status_code == 200
        body = res.json()
        assert body["amount"] == 600
        assert body["amount_subunits"] == 60000
        assert body["currency"] == "INR"
        assert body["provider_order_id"] == "order_test123"
        assert body["key_id"] == "rzp_test_key"
        assert gateway.intents == [(600, "INR")]

    def test_gateway_outage_is_bad_gateway(
        self, client, engine, auth_headers, customer, gongura, gateway, monkeypatch
    ):
        gateway.fail = True
        monkeypatch.setattr(payment_service, "gateway_provider", lambda: gateway)

        res = client.post(
            f"{API}/payment/create-order",
            json={"items": [line(gongura, "250g", 1)]},
            headers=auth_headers(customer),
        )

        assert res.status_code == 502
        assert count_orders(engine) == 0

    def test_programming_errors_are_not_reported_as_outages(
        self, client, auth_headers, customer, gongura, gateway, monkeypatch
    ):
        def broken(amount, currency):
            raise TypeError("unexpected keyword")

        monkeypatch.setattr(gateway, "create_payment_intent", broken)
        monkeypatch.setattr(payment_service, "gateway_provider", lambda: gateway)

        with pytest.raises(TypeError):
            client.post(
                f"{API}/payment/create-order",
                json={"items": [line(gongura, "250g", 1)]},
                headers=auth_headers(customer),
            )
