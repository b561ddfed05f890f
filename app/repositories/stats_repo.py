# app/repositories/stats_repo.py
from sqlalchemy import func
from sqlmodel import Session, select

from app.models.order import Order


class StatsRepository:
    """
    Read-only aggregated order queries for the admin console.
    """

    def count_orders(self, session: Session) -> int:
        stmt = select(func.count()).select_from(Order)
        value = session.exec(stmt).one()
        return int(value or 0)

    def total_revenue(self, session: Session) -> float:
        """
        Sum of total_amount for all non-cancelled orders.
        """
        stmt = (
            select(func.coalesce(func.sum(Order.total_amount), 0.0))
            .where(Order.status != "cancelled")
        )
        value = session.exec(stmt).one()
        return float(value or 0.0)

    def by_status(self, session: Session) -> list[tuple]:
        """
        (status, order count, summed total_amount) per status.
        """
        stmt = (
            select(
                Order.status,
                func.count(Order.id).label("count"),
                func.coalesce(func.sum(Order.total_amount), 0.0).label("total_amount"),
            )
            .group_by(Order.status)
            .order_by(Order.status)
        )
        return list(session.exec(stmt).all())
