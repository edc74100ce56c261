from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from core.errors import ApiError
from models.enums import PaymentKind, PaymentStatus
from models.orm_payment import PaymentEntity, PaymentStatusHistoryEntity

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def record_payment(
    db: Session,
    *,
    payer_id: int,
    amount: float,
    status: str,
    type: str = PaymentKind.SUBSCRIPTION.value,
    currency: str = "INR",
    payment_method: str | None = "razorpay",
    transaction_id: str | None = None,
    subscription_id: int | None = None,
    payee_id: int | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    razorpay_order_id: str | None = None,
    razorpay_payment_id: str | None = None,
    razorpay_subscription_id: str | None = None,
    razorpay_signature: str | None = None,
    commit: bool = True,
) -> PaymentEntity:
    """Append a ledger row. Ledger rows are never edited except by the admin status flow.

    With ``commit=False`` the row is only flushed so the caller can commit it
    together with its own changes.
    """
    payment = PaymentEntity(
        payer_id=payer_id,
        payee_id=payee_id,
        subscription_id=subscription_id,
        amount=amount,
        currency=currency,
        status=status,
        type=type,
        payment_method=payment_method,
        transaction_id=transaction_id,
        description=description,
        meta=metadata or {},
        razorpay_order_id=razorpay_order_id,
        razorpay_payment_id=razorpay_payment_id,
        razorpay_subscription_id=razorpay_subscription_id,
        razorpay_signature=razorpay_signature,
    )
    payment.status_history.append(
        PaymentStatusHistoryEntity(
            status=status,
            description=f"Payment {type} initiated",
            timestamp=_now_utc(),
        )
    )
    db.add(payment)
    if commit:
        db.commit()
        db.refresh(payment)
    else:
        db.flush()

    logger.info(f"Payment record {payment.id} created: payer={payer_id}, amount={amount}, status={status}")
    return payment


def list_payment_history(db: Session, user_id: int, limit: int = 50, type: str | None = None) -> list[PaymentEntity]:
    query = db.query(PaymentEntity).filter(PaymentEntity.payer_id == user_id)
    if type:
        query = query.filter(PaymentEntity.type == type)
    return query.order_by(PaymentEntity.id.desc()).limit(limit).all()


def update_payment_status(
    db: Session,
    payment_id: int,
    status: str,
    description: str | None = None,
) -> PaymentEntity:
    if status not in {s.value for s in PaymentStatus}:
        raise ApiError(f"Invalid payment status: {status}", 400)

    payment = db.query(PaymentEntity).filter(PaymentEntity.id == payment_id).first()
    if not payment:
        raise ApiError("Payment not found", 404)

    previous = payment.status
    payment.status = status
    payment.status_history.append(
        PaymentStatusHistoryEntity(
            status=status,
            description=description or f"Status changed to {status}",
            timestamp=_now_utc(),
        )
    )
    db.commit()
    db.refresh(payment)

    logger.info(f"Payment {payment.id} status changed {previous} -> {status}")
    return payment


def payment_to_dict(payment: PaymentEntity) -> dict:
    return {
        "id": payment.id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "type": payment.type,
        "description": payment.description,
        "transactionId": payment.transaction_id,
        "createdAt": payment.created_at,
        "razorpayPaymentId": payment.razorpay_payment_id,
        "metadata": payment.meta or {},
        "statusHistory": [
            {"status": h.status, "description": h.description, "timestamp": h.timestamp}
            for h in payment.status_history
        ],
    }
