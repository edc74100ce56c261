"""
Razorpay gateway adapter.

Thin wrapper over the Razorpay SDK for order creation and subscription
lookup, plus the HMAC checks used for checkout signatures and webhook bodies.
One instance is built at startup and injected into request handlers.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import razorpay

from core.logging_config import sanitize_log_data
from core.settings import Settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    pass


def compute_signature(secret: str, message: str | bytes) -> str:
    """Hex HMAC-SHA256 of ``message`` keyed with ``secret``."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayGateway:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        currency: str = "INR",
        client: Any | None = None,
    ):
        self.key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self.currency = currency
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, amount_minor: int, receipt: str, notes: dict[str, str] | None = None) -> dict:
        """
        Create a Razorpay order.

        Args:
            amount_minor: Amount in paise
            receipt: Merchant receipt id (max 40 chars)
            notes: Free-form key/value pairs stored on the order

        Raises:
            GatewayError: If the SDK call fails
        """
        data = {
            "amount": int(amount_minor),
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            order = self.client.order.create(data=data)
        except Exception as e:
            logger.error(f"Failed to create Razorpay order: {e}", exc_info=True)
            raise GatewayError("Failed to create payment order") from e

        logger.info(f"Created Razorpay order {order.get('id')}: {sanitize_log_data(data)}")
        return order

    def fetch_subscription(self, gateway_subscription_id: str) -> dict:
        try:
            return self.client.subscription.fetch(gateway_subscription_id)
        except Exception as e:
            logger.error(f"Failed to fetch Razorpay subscription {gateway_subscription_id}: {e}", exc_info=True)
            raise GatewayError("Failed to fetch subscription from payment gateway") from e

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = compute_signature(self._key_secret, f"{order_id}|{payment_id}")
        is_valid = hmac.compare_digest(expected, signature or "")
        if not is_valid:
            logger.warning(f"Invalid payment signature for order {order_id}, payment {payment_id}")
        return is_valid

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured; rejecting webhook")
            return False
        expected = compute_signature(self._webhook_secret, body)
        return hmac.compare_digest(expected, signature or "")


def build_gateway(settings: Settings) -> RazorpayGateway | None:
    """Gateway for the configured credentials, or None when payments are disabled."""
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        logger.warning("Razorpay credentials not configured - payment features disabled")
        return None

    try:
        gateway = RazorpayGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            currency=settings.payment_currency,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Razorpay client: {e}", exc_info=True)
        return None

    logger.info("Razorpay client initialized")
    return gateway
