# app/core/payment_gateway.py
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache

import razorpay
import requests

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Failures talking to Razorpay (rejected request, provider outage, network).
GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.RequestException,
)

# Payment states in which the money is held or settled.
CHARGED_STATES = ("authorized", "captured")


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    provider_order_id: str
    amount_subunits: int
    currency: str


@dataclass(frozen=True)
class PaymentProof:
    """What the checkout widget hands back after a successful payment."""

    provider_order_id: str
    payment_id: str
    signature: str


def to_subunits(amount: float) -> int:
    """Rupees -> paise (gateway amounts are in the smallest currency unit)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayGateway:
    """
    Thin boundary over the Razorpay SDK.

    - create_payment_intent: creates the gateway order the widget pays.
    - verify_signature: HMAC check of (order_id | payment_id) with the key
      secret. Never raises on a bad signature, returns False.
    - paid_amount_subunits: what the gateway actually charged for a proof.
    """

    def __init__(self, key_id: str, key_secret: str):
        self.key_id = key_id
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_payment_intent(self, amount: float, currency: str) -> PaymentIntent:
        receipt = f"rcpt_{uuid.uuid4().hex[:20]}"
        amount_subunits = to_subunits(amount)
        provider_order = self.client.order.create(
            data={
                "amount": amount_subunits,
                "currency": currency,
                "receipt": receipt,
            }
        )
        return PaymentIntent(
            intent_id=receipt,
            provider_order_id=provider_order["id"],
            amount_subunits=amount_subunits,
            currency=currency,
        )

    def verify_signature(self, proof: PaymentProof) -> bool:
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": proof.provider_order_id,
                    "razorpay_payment_id": proof.payment_id,
                    "razorpay_signature": proof.signature,
                }
            )
        except razorpay.errors.SignatureVerificationError:
            logger.warning(
                "Signature mismatch for gateway order %s / payment %s",
                proof.provider_order_id,
                proof.payment_id,
            )
            return False
        return True

    def paid_amount_subunits(self, proof: PaymentProof) -> int | None:
        """
        Amount (paise) charged by the payment in `proof`.

        None when the payment belongs to another gateway order or was not
        authorized/captured. Transport failures raise one of GATEWAY_ERRORS.
        """
        payment = self.client.payment.fetch(proof.payment_id)
        if payment.get("order_id") != proof.provider_order_id:
            logger.warning(
                "Payment %s belongs to gateway order %s, not %s",
                proof.payment_id,
                payment.get("order_id"),
                proof.provider_order_id,
            )
            return None
        if payment.get("status") not in CHARGED_STATES:
            logger.warning(
                "Payment %s is %s, not charged", proof.payment_id, payment.get("status")
            )
            return None
        return int(payment["amount"])


@lru_cache
def get_payment_gateway() -> RazorpayGateway:
    """
    Cached gateway built from RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET.

    Raises:
        RuntimeError: if the keys are not configured.
    """
    settings = get_settings()
    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        raise RuntimeError("Missing RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET in .env")
    return RazorpayGateway(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
