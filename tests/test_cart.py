"""
Cart endpoints: merge semantics, ownership and price snapshots.
"""

import uuid

import pytest
from sqlmodel import Session

from app.models.product import Product

API = "/api/v1"


def add(client, headers, product, weight, quantity):
    return client.post(
        f"{API}/cart",
        json={"product_id": str(product.id), "selected_weight": weight, "quantity": quantity},
        headers=headers,
    )


class TestCart:

    def test_same_tier_is_merged(self, client, auth_headers, customer, avakaya):
        headers = auth_headers(customer)

        add(client, headers, avakaya, "250g", 1)
        res = add(client, headers, avakaya, "250g", 2)

        assert res.status_code == 200
        body = res.json()
        assert len(body["items"]) == 1
        assert body["items"][0]["quantity"] == 3
        assert body["total_quantity"] == 3
        assert body["total_price"] == 300

    def test_different_tiers_are_separate_rows(self, client, auth_headers, customer, avakaya):
        headers = auth_headers(customer)

        add(client, headers, avakaya, "250g", 1)
        res = add(client, headers, avakaya, "1kg", 1)

        assert len(res.json()["items"]) == 2
        assert res.json()["total_price"] == 440

    def test_discounted_unit_price(self, client, auth_headers, customer, gongura):
        res = add(client, auth_headers(customer), gongura, "500g", 1)
        assert res.json()["items"][0]["unit_price"] == 384

    def test_update_and_remove(self, client, auth_headers, customer, avakaya):
        headers = auth_headers(customer)
        item_id = add(client, headers, avakaya, "500g", 1).json()["items"][0]["id"]

        res = client.patch(f"{API}/cart/{item_id}", json={"quantity": 4}, headers=headers)
        assert res.json()["items"][0]["quantity"] == 4

        res = client.delete(f"{API}/cart/{item_id}", headers=headers)
        assert res.json()["items"] == []

    def test_cannot_touch_someone_elses_row(
        self, client, auth_headers, customer, other_customer, avakaya
    ):
        item_id = add(client, auth_headers(customer), avakaya, "250g", 1).json()["items"][0]["id"]

        res = client.delete(f"{API}/cart/{item_id}", headers=auth_headers(other_customer))

        assert res.status_code == 404

    def test_unavailable_product(self, client, engine, auth_headers, customer, avakaya):
        with Session(engine) as s:
            product = s.get(Product, avakaya.id)
            product.is_available = False
            s.add(product)
            s.commit()

        res = add(client, auth_headers(customer), avakaya, "250g", 1)

        assert res.status_code == 400

    def test_unknown_product(self, client, auth_headers, customer):
        res = client.post(
            f"{API}/cart",
            json={"product_id": str(uuid.uuid4()), "selected_weight": "250g", "quantity": 1},
            headers=auth_headers(customer),
        )
        assert res.status_code == 404

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, client, auth_headers, customer, avakaya, quantity):
        assert add(client, auth_headers(customer), avakaya, "250g", quantity).status_code == 422

    def test_clear(self, client, auth_headers, customer, avakaya, gongura):
        headers = auth_headers(customer)
        add(client, headers, avakaya, "250g", 1)
        add(client, headers, gongura, "250g", 1)

        res = client.delete(f"{API}/cart", headers=headers)

        assert res.json() == {"items": [], "total_quantity": 0, "total_price": 0.0}
