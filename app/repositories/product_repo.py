# app/repositories/product_repo.py
import uuid

from sqlalchemy import case, delete, update
from sqlmodel import Session, select

from app.models.cart import CartItem
from app.models.product import Product, ProductPrice


class ProductRepository:
    """
    Data access layer for Product & ProductPrice.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    - Catalog CRUD commits; decrement_stock does NOT (it runs inside the
      order transaction that owns it).
    """

    # ----- Products -----

    def get_by_id(self, session: Session, product_id: uuid.UUID) -> Product | None:
        return session.get(Product, product_id)

    def list_products(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        only_available: bool = True,
        category: str | None = None,
    ) -> list[Product]:
        stmt = select(Product)
        if only_available:
            stmt = stmt.where(Product.is_available == True)  # noqa: E712
        if category and category != "Shop all":
            stmt = stmt.where(Product.category == category)
        stmt = stmt.order_by(Product.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def create(
        self,
        session: Session,
        product: Product,
        prices: list[ProductPrice],
    ) -> Product:
        session.add(product)
        session.flush()  # Assign PK
        for tier in prices:
            tier.product_id = product.id
        session.add_all(prices)
        session.commit()
        session.refresh(product)
        return product

    def update(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    def delete(self, session: Session, product: Product) -> None:
        session.exec(delete(CartItem).where(CartItem.product_id == product.id))
        session.exec(delete(ProductPrice).where(ProductPrice.product_id == product.id))
        session.delete(product)
        session.commit()

    # ----- Weight tiers -----

    def list_prices(self, session: Session, product_id: uuid.UUID) -> list[ProductPrice]:
        stmt = (
            select(ProductPrice)
            .where(ProductPrice.product_id == product_id)
            .order_by(ProductPrice.price)
        )
        return session.exec(stmt).all()

    def list_prices_for_products(
        self,
        session: Session,
        product_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[ProductPrice]]:
        result: dict[uuid.UUID, list[ProductPrice]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return result
        stmt = (
            select(ProductPrice)
            .where(ProductPrice.product_id.in_(product_ids))
            .order_by(ProductPrice.price)
        )
        for tier in session.exec(stmt).all():
            result[tier.product_id].append(tier)
        return result

    def get_price(
        self,
        session: Session,
        product_id: uuid.UUID,
        weight: str,
    ) -> ProductPrice | None:
        stmt = select(ProductPrice).where(
            ProductPrice.product_id == product_id,
            ProductPrice.weight == weight,
        )
        return session.exec(stmt).first()

    def replace_prices(
        self,
        session: Session,
        product_id: uuid.UUID,
        prices: list[ProductPrice],
    ) -> None:
        """
        Swap every tier of a product. No commit; caller commits with the
        product update.
        """
        session.exec(delete(ProductPrice).where(ProductPrice.product_id == product_id))
        for tier in prices:
            tier.product_id = product_id
        session.add_all(prices)
        session.flush()

    def decrement_stock(
        self,
        session: Session,
        product_id: uuid.UUID,
        weight: str,
        quantity: int,
    ) -> int:
        """
        Atomically lower one tier's stock by `quantity`, clamped at zero.

        Single UPDATE with arithmetic on the column, so two orders hitting
        the same tier concurrently are both reflected.

        Returns:
            number of tiers matched (0 => product or tier no longer exists)
        """
        stmt = (
            update(ProductPrice)
            .where(
                ProductPrice.product_id == product_id,
                ProductPrice.weight == weight,
            )
            .values(
                stock=case(
                    (ProductPrice.stock > quantity, ProductPrice.stock - quantity),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount
