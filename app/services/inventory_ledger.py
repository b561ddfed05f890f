# app/services/inventory_ledger.py
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import Session

from app.models.order import Order, OrderItem
from app.repositories.order_repo import OrderRepository
from app.repositories.product_repo import ProductRepository

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Applies an order's stock decrement exactly once.

    Both delivery entry points (admin status update, delivery OTP) go
    through apply_once. The order is claimed with a compare-and-set on
    orders.stock_decremented, then every line is decremented with an
    atomic per-tier UPDATE. Nothing is committed here: the flag, the
    tier writes and the caller's status change share one transaction.
    """

    def __init__(self, order_repo: OrderRepository, product_repo: ProductRepository):
        self.order_repo = order_repo
        self.product_repo = product_repo

    def apply_once(
        self,
        session: Session,
        order: Order,
        items: list[OrderItem] | None = None,
    ) -> bool:
        """
        Decrement stock for every line of `order` unless already done.

        Returns:
            True if this call applied the decrement, False if it was a no-op.
        """
        if order.stock_decremented:
            return False

        if not self.order_repo.claim_stock_decrement(session, order.id):
            # Lost the race: someone else already applied it.
            logger.info("Stock already decremented for order %s, skipping", order.id)
            set_committed_value(order, "stock_decremented", True)
            return False

        if items is None:
            items = self.order_repo.list_items_for_order(session, order.id)

        for item in items:
            try:
                matched = self.product_repo.decrement_stock(
                    session,
                    item.product_id,
                    item.selected_weight,
                    item.quantity,
                )
            except SQLAlchemyError:
                logger.error(
                    "Order %s: stock decrement failed at product %s (%s) qty %d",
                    order.id,
                    item.product_id,
                    item.selected_weight,
                    item.quantity,
                )
                raise
            if not matched:
                logger.warning(
                    "Order %s: no stock tier for product %s (%s), line skipped",
                    order.id,
                    item.product_id,
                    item.selected_weight,
                )
                continue
            logger.info(
                "Order %s: stock of product %s (%s) lowered by %d",
                order.id,
                item.product_id,
                item.selected_weight,
                item.quantity,
            )

        set_committed_value(order, "stock_decremented", True)
        return True
