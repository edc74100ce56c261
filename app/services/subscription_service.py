from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import ApiError
from models.enums import (
    Duration,
    HistoryEntryStatus,
    PaymentKind,
    PaymentStatus,
    PaymentType,
    PlanType,
    SubscriptionStatus,
    UsageKind,
    UserRole,
)
from models.orm_payment import PaymentEntity
from models.orm_subscription import SubscriptionEntity, SubscriptionPaymentEntryEntity
from models.orm_user import UserEntity
from services import plan_catalog
from services.gateway import GatewayError, RazorpayGateway
from services.payment_service import record_payment
from services.subscription_state import (
    ACTIVATE,
    CANCEL,
    EXPIRE,
    IllegalTransitionError,
    can_transition,
    transition,
)

logger = logging.getLogger(__name__)

ACTIVE = SubscriptionStatus.ACTIVE.value
LIFETIME = Duration.LIFETIME.value
VERIFIED_GATEWAY_STATUSES = ("active", "authenticated")
MS_PER_DAY = 1000 * 60 * 60 * 24

_PERIODS = {
    Duration.MONTHLY.value: relativedelta(months=1),
    Duration.YEARLY.value: relativedelta(years=1),
    Duration.LIFETIME.value: relativedelta(years=100),
}

_USAGE_FIELDS = {
    UsageKind.GIGS.value: ("gigs_posted", "maxGigs"),
    UsageKind.APPLICATIONS.value: ("applications_submitted", "maxApplications"),
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _now_ms() -> int:
    return int(time.time() * 1000)


def compute_end_date(start: datetime, duration: str) -> datetime:
    """Monthly and yearly move by calendar units; lifetime is start + 100 years."""
    return start + _PERIODS[duration]


def is_expired(sub: SubscriptionEntity, now: datetime | None = None) -> bool:
    if sub.duration == LIFETIME:
        return False
    return sub.end_date < (now or _now_utc())


def days_left(sub: SubscriptionEntity, now: datetime | None = None) -> int | None:
    if sub.duration == LIFETIME:
        return None
    delta_ms = (sub.end_date - (now or _now_utc())).total_seconds() * 1000
    return max(0, math.ceil(delta_ms / MS_PER_DAY))


def _apply(sub: SubscriptionEntity, event: str) -> None:
    previous = sub.status
    sub.status = transition(previous, event)
    logger.info(f"Subscription {sub.id}: {previous} -> {sub.status} ({event})")


def _validate_plan_request(plan_type: str | None, duration: str | None) -> None:
    if not plan_type or not duration:
        raise ApiError("Plan type and duration are required", 400)
    if plan_type not in plan_catalog.PLAN_TYPES:
        raise ApiError("Invalid plan type. Must be 'free', 'basic', or 'pro'", 400)
    if duration not in plan_catalog.DURATIONS:
        raise ApiError("Invalid duration. Must be 'monthly', 'yearly', or 'lifetime'", 400)


def _limits_for(role: str, plan_type: str) -> dict:
    try:
        return plan_catalog.get_plan_limits(plan_type, role)
    except plan_catalog.UnknownPlanError as e:
        raise ApiError(f"Invalid plan configuration: {e}", 400)


def _plan_limits(sub: SubscriptionEntity) -> dict:
    """Limits stored on the subscription at creation; catalog limits for rows without a snapshot."""
    return sub.limits or _limits_for(sub.user_role, sub.plan_type)


def _find_active(db: Session, user_id: int) -> SubscriptionEntity | None:
    return (
        db.query(SubscriptionEntity)
        .filter(SubscriptionEntity.user_id == user_id, SubscriptionEntity.status == ACTIVE)
        .order_by(SubscriptionEntity.start_date.desc())
        .first()
    )


def _expire_if_lapsed(db: Session, sub: SubscriptionEntity, now: datetime) -> bool:
    if not is_expired(sub, now):
        return False
    _apply(sub, EXPIRE)
    db.commit()
    return True


def _live_active_subscription(db: Session, user_id: int, now: datetime) -> SubscriptionEntity | None:
    """The user's active subscription, expiring it first if its period has ended."""
    sub = _find_active(db, user_id)
    if sub is None or _expire_if_lapsed(db, sub, now):
        return None
    return sub


def supersede_active(db: Session, sub: SubscriptionEntity, now: datetime) -> None:
    others = (
        db.query(SubscriptionEntity)
        .filter(
            SubscriptionEntity.user_id == sub.user_id,
            SubscriptionEntity.status == ACTIVE,
            SubscriptionEntity.id != sub.id,
        )
        .all()
    )
    for other in others:
        _apply(other, CANCEL)
        other.cancelled_at = now
        other.cancellation_reason = f"Replaced by {sub.plan_type} plan"
        other.auto_renewal = False
    if others:
        db.flush()


def _summary(sub: SubscriptionEntity) -> dict:
    return {
        "id": sub.id,
        "status": sub.status,
        "planType": sub.plan_type,
        "duration": sub.duration,
        "startDate": sub.start_date,
        "endDate": sub.end_date,
    }


def _free_response(sub: SubscriptionEntity, limits: dict | None = None) -> dict:
    plan_details = {"type": sub.plan_type, "duration": sub.duration, "price": 0}
    subscription = _summary(sub)
    if limits is not None:
        plan_details["limits"] = limits
        subscription["limits"] = limits
    return {
        "paymentType": PaymentType.FREE.value,
        "subscriptionId": sub.id,
        "planDetails": plan_details,
        "subscription": subscription,
    }


def create_subscription(
    db: Session,
    gateway: RazorpayGateway | None,
    user: UserEntity,
    plan_type: str | None,
    duration: str | None,
) -> tuple[dict, str]:
    _validate_plan_request(plan_type, duration)

    if plan_type == PlanType.FREE.value:
        return _activate_free_plan(db, user, duration)

    if gateway is None:
        raise ApiError("Payment service is currently unavailable. Please try again later.", 503)

    pricing = plan_catalog.get_plan_pricing(user.role, plan_type, duration)
    if not pricing:
        raise ApiError(f"Invalid plan configuration for {user.role} - {plan_type} - {duration}", 400)
    limits = _limits_for(user.role, plan_type)

    receipt = f"ord_{str(user.id)[-6:]}_{str(_now_ms())[-8:]}"
    notes = {
        "userId": str(user.id),
        "userRole": user.role,
        "planType": plan_type,
        "duration": duration,
        "email": user.email,
        "paymentType": PaymentType.ONE_TIME.value,
    }
    try:
        order = gateway.create_order(pricing["price"] * 100, receipt, notes)
    except GatewayError:
        raise ApiError("Failed to create payment order", 500)

    start = _now_utc()
    sub = SubscriptionEntity(
        user_id=user.id,
        user_role=user.role,
        plan_type=plan_type,
        duration=duration,
        price=pricing["price"],
        original_price=pricing["originalPrice"],
        discount=pricing["discount"],
        status=SubscriptionStatus.PENDING.value,
        start_date=start,
        end_date=compute_end_date(start, duration),
        auto_renewal=False,
        limits=limits,
        payment_type=PaymentType.ONE_TIME.value,
        razorpay_order_id=order["id"],
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    logger.info(f"Pending subscription {sub.id} created for user {user.id}, order {order['id']}")

    data = {
        "paymentType": PaymentType.ONE_TIME.value,
        "orderId": order["id"],
        "amount": pricing["price"],
        "currency": gateway.currency,
        "keyId": gateway.key_id,
        "dbSubscriptionId": sub.id,
        "planDetails": {
            "type": plan_type,
            "duration": duration,
            "originalPrice": pricing["originalPrice"],
            "discountedPrice": pricing["price"],
            "discount": pricing["discount"],
            "limits": limits,
        },
    }
    return data, f"Payment of ₹{pricing['price']} created successfully."


def _activate_free_plan(db: Session, user: UserEntity, duration: str) -> tuple[dict, str]:
    now = _now_utc()
    existing = _live_active_subscription(db, user.id, now)
    if existing:
        return _free_response(existing), "You already have an active subscription."

    limits = _limits_for(user.role, PlanType.FREE.value)
    sub = SubscriptionEntity(
        user_id=user.id,
        user_role=user.role,
        plan_type=PlanType.FREE.value,
        duration=duration,
        price=0,
        original_price=0,
        discount=0,
        status=ACTIVE,
        start_date=now,
        end_date=compute_end_date(now, duration),
        auto_renewal=False,
        limits=limits,
        payment_type=PaymentType.FREE.value,
        last_payment_date=now,
    )
    sub.payment_history.append(
        SubscriptionPaymentEntryEntity(
            payment_id=f"free_{_now_ms()}",
            amount=0,
            status=HistoryEntryStatus.SUCCESS.value,
            paid_at=now,
        )
    )
    db.add(sub)
    try:
        db.commit()
    except IntegrityError:
        # another request activated a plan for this user first
        db.rollback()
        winner = _live_active_subscription(db, user.id, _now_utc())
        if winner is None:
            raise
        logger.warning(f"Concurrent free activation for user {user.id}; returning subscription {winner.id}")
        return _free_response(winner), "You already have an active subscription."

    db.refresh(sub)
    logger.info(f"Free subscription {sub.id} activated for user {user.id}")
    return _free_response(sub, limits), "Free plan activated successfully."


def get_plans(role: str | None) -> dict:
    if not role or role not in plan_catalog.ROLES:
        raise ApiError("Valid user role is required (freelancer or hiring)", 400)
    return {
        "plans": plan_catalog.get_plans_for_role(role),
        "comparisonData": plan_catalog.get_comparison_data(),
        "userRole": role,
    }


def check_subscription_status(db: Session, user: UserEntity) -> tuple[dict, str]:
    inactive = {"hasActiveSubscription": False, "canPostGig": False, "subscription": None}

    sub = _find_active(db, user.id)
    if not sub:
        return inactive, "No active subscription found"

    now = _now_utc()
    if _expire_if_lapsed(db, sub, now):
        return inactive, "Subscription has expired"

    data = {
        "hasActiveSubscription": True,
        "canPostGig": True,
        "subscription": {
            "planId": sub.id,
            "planType": sub.plan_type,
            "duration": sub.duration,
            "startDate": sub.start_date,
            "endDate": sub.end_date,
            "isLifetime": sub.duration == LIFETIME,
            "isExpired": False,
            "daysLeft": days_left(sub, now),
            "active": True,
            "limits": _plan_limits(sub),
            "usage": {
                "gigsPosted": sub.gigs_posted or 0,
                "applicationsSubmitted": sub.applications_submitted or 0,
            },
        },
    }
    return data, "Active subscription found"


def _verify_with_gateway(gateway: RazorpayGateway, sub: SubscriptionEntity, data) -> bool:
    if data.payment_type == PaymentType.RECURRING.value and data.razorpay_subscription_id:
        remote = gateway.fetch_subscription(data.razorpay_subscription_id)
        sub.razorpay_subscription_id = data.razorpay_subscription_id
        sub.payment_type = PaymentType.RECURRING.value
        if data.razorpay_payment_id:
            sub.razorpay_payment_id = data.razorpay_payment_id
        return remote.get("status") in VERIFIED_GATEWAY_STATUSES

    if not (data.razorpay_payment_id and data.razorpay_order_id and data.razorpay_signature):
        logger.warning(f"Subscription {sub.id}: missing payment verification parameters")
        return False

    if sub.razorpay_order_id and sub.razorpay_order_id != data.razorpay_order_id:
        logger.warning(f"Subscription {sub.id}: order {data.razorpay_order_id} does not belong to it")
        return False

    if not gateway.verify_payment_signature(
        data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
    ):
        return False

    sub.razorpay_order_id = data.razorpay_order_id
    sub.razorpay_payment_id = data.razorpay_payment_id
    sub.razorpay_signature = data.razorpay_signature
    sub.payment_type = PaymentType.ONE_TIME.value
    return True


def verify_payment(
    db: Session,
    gateway: RazorpayGateway | None,
    user: UserEntity,
    data,
) -> tuple[dict, str]:
    sub = (
        db.query(SubscriptionEntity)
        .filter(SubscriptionEntity.id == data.subscription_id, SubscriptionEntity.user_id == user.id)
        .first()
    )
    if not sub:
        logger.error(f"Subscription not found: {data.subscription_id}")
        raise ApiError("Subscription not found", 404)

    if gateway is None:
        raise ApiError("Payment service is currently unavailable. Please try again later.", 503)

    try:
        verified = _verify_with_gateway(gateway, sub, data)
    except GatewayError:
        db.rollback()
        raise ApiError("Payment gateway error. Please try again later.", 500)

    now = _now_utc()

    if not verified:
        if can_transition(sub.status, CANCEL):
            _apply(sub, CANCEL)
            sub.cancelled_at = now
            sub.cancellation_reason = "Payment verification failed"
        db.commit()
        raise ApiError("Payment verification failed", 400)

    try:
        new_status = transition(sub.status, ACTIVATE)
    except IllegalTransitionError as e:
        db.rollback()
        raise ApiError(str(e), 409)

    supersede_active(db, sub, now)
    logger.info(f"Subscription {sub.id}: {sub.status} -> {new_status} (payment verified)")
    sub.status = new_status
    sub.last_payment_date = now

    transaction_id = data.razorpay_payment_id or data.razorpay_subscription_id
    sub.payment_history.append(
        SubscriptionPaymentEntryEntity(
            payment_id=transaction_id,
            amount=sub.price,
            status=HistoryEntryStatus.SUCCESS.value,
            paid_at=now,
        )
    )

    if (
        data.payment_type == PaymentType.RECURRING.value
        and sub.auto_renewal
        and sub.duration in (Duration.MONTHLY.value, Duration.YEARLY.value)
    ):
        sub.next_payment_date = compute_end_date(now, sub.duration)

    db.commit()
    db.refresh(sub)

    try:
        record_payment(
            db,
            payer_id=sub.user_id,
            subscription_id=sub.id,
            amount=sub.price,
            status=PaymentStatus.COMPLETED.value,
            type=PaymentKind.SUBSCRIPTION.value,
            currency=gateway.currency,
            transaction_id=transaction_id,
            description=f"{sub.plan_type.capitalize()} plan ({sub.duration})",
            metadata={
                "subscriptionId": sub.id,
                "planType": sub.plan_type,
                "duration": sub.duration,
                "paymentType": data.payment_type,
            },
            razorpay_order_id=data.razorpay_order_id,
            razorpay_payment_id=data.razorpay_payment_id,
            razorpay_subscription_id=data.razorpay_subscription_id,
            razorpay_signature=data.razorpay_signature,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create payment record for subscription {sub.id}: {e}", exc_info=True)

    result = {
        "subscription": {
            "id": sub.id,
            "status": sub.status,
            "planType": sub.plan_type,
            "duration": sub.duration,
            "endDate": sub.end_date,
            "autoRenewal": sub.auto_renewal,
            "limits": _plan_limits(sub),
        }
    }
    return result, "Payment verified and subscription activated"


def _usage_block(sub: SubscriptionEntity, limits: dict) -> dict:
    kind = UsageKind.GIGS.value if sub.user_role == UserRole.HIRING.value else UsageKind.APPLICATIONS.value
    field, limit_key = _USAGE_FIELDS[kind]
    used = getattr(sub, field) or 0
    limit = limits.get(limit_key)

    if limit is None or limit == plan_catalog.UNLIMITED:
        remaining, percentage = "unlimited", 0
    else:
        remaining = max(0, limit - used)
        percentage = round(used / limit * 100) if limit else 100

    return {
        "type": kind,
        "used": used,
        "limit": limit,
        "remaining": remaining,
        "percentage": percentage,
    }


def get_subscription_management(db: Session, user: UserEntity) -> dict:
    now = _now_utc()
    current = (
        db.query(SubscriptionEntity)
        .filter(
            SubscriptionEntity.user_id == user.id,
            SubscriptionEntity.status == ACTIVE,
            or_(SubscriptionEntity.duration == LIFETIME, SubscriptionEntity.end_date > now),
        )
        .first()
    )

    history = (
        db.query(SubscriptionEntity)
        .filter(SubscriptionEntity.user_id == user.id)
        .order_by(SubscriptionEntity.id.desc())
        .limit(10)
        .all()
    )

    payments = (
        db.query(PaymentEntity)
        .filter(PaymentEntity.payer_id == user.id, PaymentEntity.type == PaymentKind.SUBSCRIPTION.value)
        .order_by(PaymentEntity.id.desc())
        .limit(5)
        .all()
    )

    current_data = None
    if current:
        limits = _plan_limits(current)
        is_lifetime = current.duration == LIFETIME
        current_data = {
            "id": current.id,
            "planType": current.plan_type,
            "duration": current.duration,
            "status": current.status,
            "startDate": current.start_date,
            "endDate": None if is_lifetime else current.end_date,
            "isLifetime": is_lifetime,
            "remainingDays": days_left(current, now),
            "autoRenewal": current.auto_renewal,
            "renewalDate": current.next_payment_date,
            "limits": limits,
            "usage": _usage_block(current, limits),
            "billing": {
                "price": current.price,
                "originalPrice": current.original_price,
                "discount": current.discount,
                "nextBillingDate": None if is_lifetime else current.next_payment_date,
            },
        }

    return {
        "userRole": user.role,
        "hasActiveSubscription": current is not None,
        "currentSubscription": current_data,
        "subscriptionHistory": [
            {
                "id": s.id,
                "planType": s.plan_type,
                "duration": s.duration,
                "status": s.status,
                "startDate": s.start_date,
                "endDate": s.end_date,
                "price": s.price,
                "createdAt": s.created_at,
                "cancelledAt": s.cancelled_at,
                "cancellationReason": s.cancellation_reason,
            }
            for s in history
        ],
        "paymentHistory": [
            {
                "id": p.id,
                "amount": p.amount,
                "status": p.status,
                "description": p.description,
                "createdAt": p.created_at,
                "razorpayPaymentId": p.razorpay_payment_id,
            }
            for p in payments
        ],
        "upgradeOptions": (
            plan_catalog.get_upgrade_options(current.plan_type, current.user_role) if current else None
        ),
    }


def update_subscription_settings(
    db: Session,
    user: UserEntity,
    action: str | None,
    auto_renewal: bool | None,
    subscription_id: int | None = None,
) -> tuple[dict, str]:
    query = db.query(SubscriptionEntity).filter(
        SubscriptionEntity.user_id == user.id,
        SubscriptionEntity.status == ACTIVE,
    )
    if subscription_id is not None:
        query = query.filter(SubscriptionEntity.id == subscription_id)
    sub = query.first()
    if not sub:
        raise ApiError("Active subscription not found", 404)

    if action == "cancel":
        _apply(sub, CANCEL)
        sub.cancelled_at = _now_utc()
        sub.cancellation_reason = "User requested cancellation"
        sub.auto_renewal = False
        db.commit()
        db.refresh(sub)
        data = {
            "subscription": {
                "id": sub.id,
                "status": sub.status,
                "cancelledAt": sub.cancelled_at,
                "accessUntil": sub.end_date,
            }
        }
        return data, "Subscription cancelled successfully"

    if action == "toggle_renewal" or auto_renewal is not None:
        if sub.duration == LIFETIME:
            raise ApiError("Lifetime subscriptions don't have auto-renewal", 400)

        sub.auto_renewal = (not sub.auto_renewal) if action == "toggle_renewal" else auto_renewal
        db.commit()
        logger.info(f"Subscription {sub.id}: auto-renewal set to {sub.auto_renewal}")
        state = "enabled" if sub.auto_renewal else "disabled"
        return {"autoRenewal": sub.auto_renewal}, f"Auto-renewal {state}"

    raise ApiError("Invalid action or parameters", 400)


def record_usage(db: Session, user: UserEntity, kind: str) -> dict:
    """Count one posted gig or submitted application against the active plan."""
    if kind not in _USAGE_FIELDS:
        raise ApiError("Invalid usage type. Must be 'gigs' or 'applications'", 400)

    sub = _live_active_subscription(db, user.id, _now_utc())
    if not sub:
        raise ApiError("An active subscription is required", 403)

    field, limit_key = _USAGE_FIELDS[kind]
    limits = _plan_limits(sub)
    limit = limits.get(limit_key)
    if limit is None:
        raise ApiError(f"{kind.capitalize()} are not available on your plan", 403)

    used = getattr(sub, field) or 0
    if limit != plan_catalog.UNLIMITED and used >= limit:
        raise ApiError(f"Plan limit reached: {used}/{limit} {kind}", 403)

    setattr(sub, field, used + 1)
    db.commit()
    db.refresh(sub)

    logger.info(f"Subscription {sub.id}: {field} -> {used + 1}")
    return {
        "subscriptionId": sub.id,
        "type": kind,
        "used": used + 1,
        "limit": limit,
        "remaining": "unlimited" if limit == plan_catalog.UNLIMITED else max(0, limit - used - 1),
    }
