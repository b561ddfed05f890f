# app/services/stats_service.py
from sqlmodel import Session

from app.repositories.stats_repo import StatsRepository
from app.schemas.order import ORDER_STATUSES, OrderStats, OrderStatusBucket


class StatsService:
    """
    Orchestrates aggregated order statistics for the admin console.
    """

    def __init__(self, repo: StatsRepository):
        self.repo = repo

    def get_order_stats(self, session: Session) -> OrderStats:
        total_orders = self.repo.count_orders(session)
        total_revenue = self.repo.total_revenue(session)

        rows = {status: (count, amount) for status, count, amount in self.repo.by_status(session)}

        # Every status is listed, zero-filled, in lifecycle order
        by_status: list[OrderStatusBucket] = []
        for status in ORDER_STATUSES:
            count, amount = rows.get(status, (0, 0.0))
            by_status.append(
                OrderStatusBucket(
                    status=status,
                    count=int(count or 0),
                    total_amount=round(float(amount or 0.0), 2),
                )
            )

        return OrderStats(
            total_orders=int(total_orders or 0),
            total_revenue=round(float(total_revenue or 0.0), 2),
            by_status=by_status,
        )
