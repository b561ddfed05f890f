# app/services/cart_service.py
import uuid

from sqlmodel import Session

from app.core.errors import NotFound, ValidationFailed
from app.models.cart import CartItem
from app.models.product import Product
from app.repositories.cart_repo import CartRepository
from app.repositories.product_repo import ProductRepository
from app.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartItemRead,
    CartSummary,
)
from app.services.pricing import final_price


class CartService:
    """
    Business logic for cart operations.

    Responsibilities:
      - validate product existence, availability and weight tier
      - merge (product, weight) pairs instead of duplicating rows
      - snapshot the current final tier price as unit_price
      - compute line totals and cart totals

    Cart prices are a convenience for the storefront; checkout reprices.
    """

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    # ---- internal helpers ----

    def _get_valid_product(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if not product:
            raise NotFound("Product not found")
        if not product.is_available:
            raise ValidationFailed("Product is unavailable")
        return product

    def _unit_price(self, session: Session, product: Product, weight: str) -> float:
        tier = self.product_repo.get_price(session, product.id, weight)
        if not tier:
            raise ValidationFailed(f"Weight {weight} is not sold for this product")
        return final_price(tier.price, product)

    # ---- public operations ----

    def get_cart_summary(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> CartSummary:
        """
        Return full cart summary:
          - list of CartItemRead (with line_total)
          - total_quantity
          - total_price
        """
        items = self.cart_repo.list_for_user(session, user_id)

        item_reads: list[CartItemRead] = []
        total_qty = 0
        total_price = 0.0

        for it in items:
            line_total = it.quantity * it.unit_price
            total_qty += it.quantity
            total_price += line_total

            item_reads.append(
                CartItemRead(
                    id=it.id,
                    product_id=it.product_id,
                    selected_weight=it.selected_weight,
                    quantity=it.quantity,
                    unit_price=it.unit_price,
                    line_total=line_total,
                    created_at=it.created_at,
                )
            )

        return CartSummary(
            items=item_reads,
            total_quantity=total_qty,
            total_price=round(total_price, 2),
        )

    def add_to_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: CartItemCreate,
    ) -> CartSummary:
        """
        Add a product tier to the user's cart.

        An existing (product, weight) row gets its quantity increased and
        its unit_price refreshed; otherwise a new row is created.
        """
        product = self._get_valid_product(session, payload.product_id)
        unit_price = self._unit_price(session, product, payload.selected_weight)

        existing = self.cart_repo.get_item(
            session, user_id, payload.product_id, payload.selected_weight
        )

        if existing:
            existing.quantity += payload.quantity
            existing.unit_price = unit_price
            self.cart_repo.update(session, existing)
        else:
            item = CartItem(
                user_id=user_id,
                product_id=payload.product_id,
                selected_weight=payload.selected_weight,
                quantity=payload.quantity,
                unit_price=unit_price,
            )
            self.cart_repo.create(session, item)

        return self.get_cart_summary(session, user_id)

    def update_quantity(
        self,
        session: Session,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        payload: CartItemUpdate,
    ) -> CartSummary:
        """
        Set the quantity of one cart row.
        """
        item = self.cart_repo.get_by_id(session, item_id)
        if not item or item.user_id != user_id:
            raise NotFound("Cart item not found")

        item.quantity = payload.quantity
        self.cart_repo.update(session, item)

        return self.get_cart_summary(session, user_id)

    def remove_item(
        self,
        session: Session,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
    ) -> CartSummary:
        """
        Remove one row from the cart and return the updated summary.
        """
        item = self.cart_repo.get_by_id(session, item_id)
        if not item or item.user_id != user_id:
            raise NotFound("Cart item not found")

        self.cart_repo.delete(session, item)
        return self.get_cart_summary(session, user_id)

    def clear_cart(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> CartSummary:
        """
        Clear all items from the cart and return an empty summary.
        """
        self.cart_repo.clear_user_cart(session, user_id)
        return CartSummary(items=[], total_quantity=0, total_price=0.0)
