# app/services/product_service.py
import uuid
from datetime import datetime, timezone

from sqlmodel import Session

from app.core.errors import NotFound
from app.models.product import Product, ProductPrice
from app.repositories.product_repo import ProductRepository
from app.schemas.product import (
    PriceTierIn,
    PriceTierRead,
    ProductCreate,
    ProductRead,
    ProductUpdate,
)
from app.services.pricing import final_price, is_discount_valid

# Display order of tiers
WEIGHT_ORDER = {"250g": 0, "500g": 1, "1kg": 2}

# Fields an admin may explicitly clear
NULLABLE_FIELDS = {"discount_start_date", "discount_end_date"}


class ProductService:
    """
    Catalog operations the order flow depends on.

    Responsibilities:
      - product + weight tier CRUD (admin-only, enforced at router)
      - read models with final prices computed at request time
    """

    def __init__(self, repo: ProductRepository):
        self.repo = repo

    # ----- Helpers -----

    @staticmethod
    def _tiers(prices: list[PriceTierIn]) -> list[ProductPrice]:
        return [ProductPrice(weight=p.weight, price=p.price, stock=p.stock) for p in prices]

    def to_read(
        self,
        product: Product,
        prices: list[ProductPrice],
        now: datetime | None = None,
    ) -> ProductRead:
        now = now or datetime.now(timezone.utc)
        tiers = sorted(prices, key=lambda t: WEIGHT_ORDER.get(t.weight, 99))
        return ProductRead(
            id=product.id,
            name=product.name,
            description=product.description,
            category=product.category,
            prices=[
                PriceTierRead(
                    weight=t.weight,
                    price=t.price,
                    stock=t.stock,
                    final_price=final_price(t.price, product, now),
                )
                for t in tiers
            ],
            discount=product.discount,
            is_discount_active=product.is_discount_active,
            discount_start_date=product.discount_start_date,
            discount_end_date=product.discount_end_date,
            discount_valid=is_discount_valid(product, now),
            is_available=product.is_available,
            expiry_days=product.expiry_days,
            created_at=product.created_at,
        )

    def _get(self, session: Session, product_id: uuid.UUID) -> Product:
        product = self.repo.get_by_id(session, product_id)
        if not product:
            raise NotFound("Product not found")
        return product

    # ----- Products -----

    def list_products(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        only_available: bool = True,
        category: str | None = None,
    ) -> list[ProductRead]:
        products = self.repo.list_products(
            session,
            skip=skip,
            limit=limit,
            only_available=only_available,
            category=category,
        )
        prices = self.repo.list_prices_for_products(session, [p.id for p in products])
        now = datetime.now(timezone.utc)
        return [self.to_read(p, prices[p.id], now) for p in products]

    def get_product(self, session: Session, product_id: uuid.UUID) -> ProductRead:
        product = self._get(session, product_id)
        return self.to_read(product, self.repo.list_prices(session, product.id))

    def create_product(
        self,
        session: Session,
        payload: ProductCreate,
    ) -> ProductRead:
        product = Product(
            name=payload.name,
            description=payload.description,
            category=payload.category,
            discount=payload.discount,
            is_discount_active=payload.is_discount_active,
            discount_start_date=payload.discount_start_date,
            discount_end_date=payload.discount_end_date,
            is_available=payload.is_available,
            expiry_days=payload.expiry_days,
        )
        product = self.repo.create(session, product, self._tiers(payload.prices))
        return self.to_read(product, self.repo.list_prices(session, product.id))

    def update_product(
        self,
        session: Session,
        product_id: uuid.UUID,
        payload: ProductUpdate,
    ) -> ProductRead:
        """
        Partial update. `prices`, when given, replaces all tiers.
        """
        product = self._get(session, product_id)

        changes = payload.model_dump(exclude_unset=True, exclude={"prices"})
        for field, value in changes.items():
            if value is None and field not in NULLABLE_FIELDS:
                continue
            setattr(product, field, value)

        if payload.prices is not None:
            self.repo.replace_prices(session, product.id, self._tiers(payload.prices))

        product = self.repo.update(session, product)
        return self.to_read(product, self.repo.list_prices(session, product.id))

    def delete_product(
        self,
        session: Session,
        product_id: uuid.UUID,
    ) -> None:
        """
        Delete a product and its tiers. Past orders keep their lines;
        delivering them later skips the missing tiers.
        """
        product = self._get(session, product_id)
        self.repo.delete(session, product)
