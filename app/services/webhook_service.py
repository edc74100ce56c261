"""
Razorpay webhook processing.

The signature over the raw request body is checked before anything is
parsed. Events are then dispatched by name; each handler looks its
subscription up by a gateway identifier and logs and returns when it is
missing, so a bad event never turns into a non-200 acknowledgement.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import ApiError
from models.enums import HistoryEntryStatus, PaymentKind, PaymentStatus, SubscriptionStatus
from models.orm_subscription import SubscriptionEntity, SubscriptionPaymentEntryEntity
from models.orm_webhook_event import WebhookEventEntity
from services.gateway import RazorpayGateway
from services.payment_service import record_payment
from services.subscription_service import supersede_active
from services.subscription_state import (
    ACTIVATE,
    CANCEL,
    EXPIRE,
    PAUSE,
    RESUME,
    IllegalTransitionError,
    transition,
)

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _entity(payload: dict, name: str) -> dict:
    """``payload.<name>.entity`` as sent by Razorpay, or a bare ``payload.<name>``."""
    obj = payload.get(name) or {}
    if isinstance(obj, dict) and isinstance(obj.get("entity"), dict):
        return obj["entity"]
    return obj if isinstance(obj, dict) else {}


def _to_major(amount_minor: Any) -> float:
    return (amount_minor or 0) / 100


def _by_gateway_subscription(db: Session, gateway_subscription_id: str | None) -> SubscriptionEntity | None:
    if not gateway_subscription_id:
        return None
    return (
        db.query(SubscriptionEntity)
        .filter(SubscriptionEntity.razorpay_subscription_id == gateway_subscription_id)
        .first()
    )


def _by_order(db: Session, order_id: str | None) -> SubscriptionEntity | None:
    if not order_id:
        return None
    return db.query(SubscriptionEntity).filter(SubscriptionEntity.razorpay_order_id == order_id).first()


def _move(db: Session, sub: SubscriptionEntity, event: str, source: str) -> bool:
    try:
        new_status = transition(sub.status, event)
    except IllegalTransitionError as e:
        logger.warning(f"Webhook {source}: skipping subscription {sub.id}: {e}")
        return False

    if new_status == SubscriptionStatus.ACTIVE.value and sub.status != new_status:
        supersede_active(db, sub, _now_utc())
    logger.info(f"Webhook {source}: subscription {sub.id} {sub.status} -> {new_status}")
    sub.status = new_status
    return True


def _subscription_for(db: Session, payload: dict, source: str) -> SubscriptionEntity | None:
    remote = _entity(payload, "subscription")
    sub = _by_gateway_subscription(db, remote.get("id"))
    if sub is None:
        logger.error(f"Webhook {source}: subscription not found for {remote.get('id')}")
    return sub


def _record_ledger(db: Session, sub: SubscriptionEntity, **fields) -> None:
    """Ledger row in its own savepoint; a failure is logged and the subscription changes stay."""
    try:
        with db.begin_nested():
            record_payment(db, payer_id=sub.user_id, subscription_id=sub.id, commit=False, **fields)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create payment record for subscription {sub.id}: {e}", exc_info=True)


def _on_subscription_charged(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.charged")
    if sub is None:
        return
    payment = _entity(payload, "payment")
    remote_id = _entity(payload, "subscription").get("id")
    now = _now_utc()
    amount = _to_major(payment.get("amount"))

    sub.payment_history.append(
        SubscriptionPaymentEntryEntity(
            payment_id=payment.get("id"),
            amount=amount,
            status=HistoryEntryStatus.SUCCESS.value,
            paid_at=now,
        )
    )
    sub.last_payment_date = now
    db.flush()

    _record_ledger(
        db,
        sub,
        amount=amount,
        status=PaymentStatus.COMPLETED.value,
        type=PaymentKind.SUBSCRIPTION.value,
        currency=payment.get("currency") or "INR",
        transaction_id=payment.get("id"),
        metadata={
            "subscriptionId": sub.id,
            "planType": sub.plan_type,
            "duration": sub.duration,
            "razorpaySubscriptionId": remote_id,
        },
        razorpay_payment_id=payment.get("id"),
        razorpay_subscription_id=remote_id,
    )
    logger.info(f"Subscription {sub.id} charged: payment {payment.get('id')}")


def _on_subscription_completed(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.completed")
    if sub and _move(db, sub, EXPIRE, "subscription.completed"):
        sub.auto_renewal = False


def _on_subscription_cancelled(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.cancelled")
    if sub and _move(db, sub, CANCEL, "subscription.cancelled"):
        sub.cancelled_at = _now_utc()
        sub.cancellation_reason = "Cancelled via Razorpay"
        sub.auto_renewal = False


def _on_subscription_paused(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.paused")
    if sub:
        _move(db, sub, PAUSE, "subscription.paused")


def _on_subscription_halted(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.halted")
    if sub:
        _move(db, sub, PAUSE, "subscription.halted")


def _on_subscription_resumed(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.resumed")
    if sub:
        _move(db, sub, RESUME, "subscription.resumed")


def _on_subscription_activated(db: Session, payload: dict) -> None:
    sub = _subscription_for(db, payload, "subscription.activated")
    if sub:
        _move(db, sub, ACTIVATE, "subscription.activated")


def _on_payment_failed(db: Session, payload: dict) -> None:
    payment = _entity(payload, "payment")
    notes = payment.get("notes") or {}

    sub = _by_order(db, payment.get("order_id"))
    if sub is None and isinstance(notes, dict):
        sub = _by_gateway_subscription(db, notes.get("subscription_id"))
    if sub is None:
        logger.error(f"Webhook payment.failed: subscription not found for payment {payment.get('id')}")
        return

    amount = _to_major(payment.get("amount"))
    reason = payment.get("error_description") or "Payment failed"
    sub.payment_history.append(
        SubscriptionPaymentEntryEntity(
            payment_id=payment.get("id"),
            amount=amount,
            status=HistoryEntryStatus.FAILED.value,
            paid_at=_now_utc(),
            failure_reason=reason,
        )
    )
    db.flush()

    _record_ledger(
        db,
        sub,
        amount=amount,
        status=PaymentStatus.FAILED.value,
        type=PaymentKind.SUBSCRIPTION.value,
        currency=payment.get("currency") or "INR",
        transaction_id=payment.get("id"),
        metadata={
            "subscriptionId": sub.id,
            "planType": sub.plan_type,
            "duration": sub.duration,
            "failureReason": payment.get("error_description"),
        },
        razorpay_order_id=payment.get("order_id"),
        razorpay_payment_id=payment.get("id"),
    )
    logger.info(f"Payment {payment.get('id')} failed for subscription {sub.id}: {reason}")


def _on_invoice_paid(db: Session, payload: dict) -> None:
    invoice = _entity(payload, "invoice")
    payment = _entity(payload, "payment")

    sub = _by_gateway_subscription(db, invoice.get("subscription_id"))
    if sub is None:
        logger.error(f"Webhook invoice.paid: subscription not found for invoice {invoice.get('id')}")
        return

    now = _now_utc()
    sub.payment_history.append(
        SubscriptionPaymentEntryEntity(
            payment_id=payment.get("id") or invoice.get("payment_id"),
            amount=_to_major(invoice.get("amount")),
            status=HistoryEntryStatus.SUCCESS.value,
            paid_at=now,
        )
    )
    sub.last_payment_date = now
    logger.info(f"Invoice {invoice.get('id')} paid for subscription {sub.id}")


EVENT_HANDLERS: dict[str, Callable[[Session, dict], None]] = {
    "subscription.charged": _on_subscription_charged,
    "subscription.completed": _on_subscription_completed,
    "subscription.cancelled": _on_subscription_cancelled,
    "subscription.paused": _on_subscription_paused,
    "subscription.halted": _on_subscription_halted,
    "subscription.resumed": _on_subscription_resumed,
    "subscription.activated": _on_subscription_activated,
    "payment.failed": _on_payment_failed,
    "invoice.paid": _on_invoice_paid,
}


def _already_processed(db: Session, event_id: str) -> bool:
    return db.query(WebhookEventEntity).filter(WebhookEventEntity.event_id == event_id).first() is not None


def handle_webhook(
    db: Session,
    gateway: RazorpayGateway | None,
    raw_body: bytes,
    signature: str | None,
    event_id: str | None = None,
) -> None:
    if not signature:
        logger.error("Missing Razorpay signature")
        raise ApiError("Missing signature", 400)

    if gateway is None:
        raise ApiError("Payment service is currently unavailable. Please try again later.", 503)

    if not gateway.verify_webhook_signature(raw_body, signature):
        logger.error("Invalid webhook signature")
        raise ApiError("Invalid signature", 400)

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ApiError("Invalid webhook payload", 400)
    if not isinstance(event, dict):
        raise ApiError("Invalid webhook payload", 400)

    name = event.get("event")
    if not isinstance(name, str):
        logger.warning(f"Webhook without a usable event name: {name!r}")
        name = None
    payload = event.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    if event_id and _already_processed(db, event_id):
        logger.info(f"Webhook event {event_id} ({name}) already processed; ignoring replay")
        return

    logger.info(f"Razorpay webhook event: {name} (id={event_id})")

    handler = EVENT_HANDLERS.get(name)
    if handler is None:
        logger.info(f"Unhandled webhook event: {name}")
    else:
        try:
            handler(db, payload)
            db.flush()
        except Exception as e:
            db.rollback()
            logger.error(f"Error handling {name}: {e}", exc_info=True)

    if event_id:
        db.add(WebhookEventEntity(event_id=event_id, event_type=name or "unknown", processed_at=_now_utc()))

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to persist webhook {name} (id={event_id}): {e}", exc_info=True)
