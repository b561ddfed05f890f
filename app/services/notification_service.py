# app/services/notification_service.py
import logging
from typing import Callable

from app.core.config import get_settings
from app.core.email_client import send_email
from app.schemas.order import OrderCustomer, OrderWithItemsRead

logger = logging.getLogger(__name__)

SendEmail = Callable[..., None]


class NotificationDispatcher:
    """
    Fire-and-forget order emails.

    Runs after the order transaction has committed (scheduled as a
    FastAPI background task). Every failure is logged and swallowed:
    an order exists whether or not its emails went out.
    """

    def __init__(self, sender: SendEmail | None = None):
        self._sender = sender

    def _send(self, **kwargs) -> None:
        # Resolved at call time so tests can patch the module attribute.
        (self._sender or send_email)(**kwargs)

    def notify_order_created(
        self,
        order: OrderWithItemsRead,
        customer: OrderCustomer | None,
    ) -> None:
        """
        Send the customer confirmation and the shop notice for a new order.
        """
        body = self._format_order(order)

        if customer is not None:
            try:
                self._send(
                    to_email=customer.email,
                    subject=f"Your order #{str(order.id)[:8]} is placed",
                    text_body=f"Hi {customer.name},\n\nThank you for your order!\n\n{body}",
                )
            except Exception:
                logger.exception(
                    "Order %s: confirmation email to customer failed", order.id
                )

        admin_email = get_settings().ADMIN_EMAIL
        if admin_email:
            who = f"{customer.name} <{customer.email}>" if customer else str(order.user_id)
            try:
                self._send(
                    to_email=admin_email,
                    subject=f"New order #{str(order.id)[:8]} ({order.payment_method})",
                    text_body=f"Customer: {who}\n\n{body}",
                )
            except Exception:
                logger.exception("Order %s: shop notification email failed", order.id)

    @staticmethod
    def _format_order(order: OrderWithItemsRead) -> str:
        lines = [
            f"- {it.product_name or it.product_id} ({it.selected_weight}) "
            f"x {it.quantity} = {it.line_total:.2f}"
            for it in order.items
        ]
        addr = order.address
        schedule = " ".join(
            part for part in (str(order.delivery_date or ""), order.delivery_time or "") if part
        )
        return "\n".join(
            [
                f"Order ID: {order.id}",
                *lines,
                f"Total: {order.total_amount:.2f}",
                f"Payment: {order.payment_method} ({order.payment_status})",
                f"Deliver to: {addr.street}, {addr.city}, {addr.state} - {addr.pincode}",
                f"Delivery: {schedule or 'as soon as possible'}",
            ]
        )
