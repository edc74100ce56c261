import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from models.orm_payment import PaymentEntity
from models.orm_subscription import SubscriptionEntity
from services import subscription_service


def _create(client, plan_type, duration):
    return client.post("/api/subscription/create", json={"planType": plan_type, "duration": duration})


def _verify(client, subscription_id, **fields):
    body = {"subscriptionId": subscription_id, "paymentType": "one-time"}
    body.update(fields)
    return client.post("/api/subscription/verify-payment", json=body)


def _pay(client, signer, plan_type="basic", duration="monthly", payment_id="pay_test001"):
    data = _create(client, plan_type, duration).json()["data"]
    order_id = data["orderId"]
    r = _verify(
        client,
        data["dbSubscriptionId"],
        razorpay_order_id=order_id,
        razorpay_payment_id=payment_id,
        razorpay_signature=signer.payment(order_id, payment_id),
    )
    assert r.status_code == 200, r.text
    return data["dbSubscriptionId"]


def test_plans_for_role(public_client):
    r = public_client.get("/api/subscription/plans", params={"role": "hiring"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["data"]["userRole"] == "hiring"
    assert len(body["data"]["plans"]) == 7
    assert "freelancer" in body["data"]["comparisonData"]


def test_plans_reject_unknown_role(public_client):
    r = public_client.get("/api/subscription/plans", params={"role": "admin"})
    assert r.status_code == 400, r.text
    assert r.json()["message"] == "Valid user role is required (freelancer or hiring)"

    assert public_client.get("/api/subscription/plans").status_code == 400


def test_create_validates_plan_and_duration(client):
    r = client.post("/api/subscription/create", json={"planType": "basic"})
    assert r.status_code == 400
    assert r.json()["message"] == "Plan type and duration are required"

    r = _create(client, "gold", "monthly")
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid plan type. Must be 'free', 'basic', or 'pro'"

    r = _create(client, "basic", "weekly")
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid duration. Must be 'monthly', 'yearly', or 'lifetime'"


def test_free_plan_activates_immediately_without_gateway_call(client, db_session, fake_razorpay, user):
    r = _create(client, "free", "monthly")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Free plan activated successfully."

    data = body["data"]
    assert data["paymentType"] == "free"
    assert data["planDetails"]["price"] == 0
    assert data["subscription"]["status"] == "active"
    assert fake_razorpay.orders == []

    sub = db_session.get(SubscriptionEntity, data["subscriptionId"])
    assert sub.user_id == user.id
    assert sub.price == 0
    assert sub.auto_renewal is False
    assert len(sub.payment_history) == 1
    assert sub.payment_history[0].payment_id.startswith("free_")
    assert sub.payment_history[0].status == "success"


def test_free_plan_is_idempotent(client, db_session, user):
    first = _create(client, "free", "monthly").json()["data"]
    second = _create(client, "free", "monthly")

    assert second.status_code == 200
    assert second.json()["message"] == "You already have an active subscription."
    assert second.json()["data"]["subscriptionId"] == first["subscriptionId"]
    assert db_session.query(SubscriptionEntity).filter(SubscriptionEntity.user_id == user.id).count() == 1


def test_paid_plan_creates_pending_subscription_and_order(client, db_session, fake_razorpay, user):
    r = _create(client, "basic", "monthly")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Payment of ₹199 created successfully."

    data = body["data"]
    assert data["amount"] == 199
    assert data["currency"] == "INR"
    assert data["keyId"] == "rzp_test_key"
    assert data["planDetails"]["originalPrice"] == 499
    assert data["planDetails"]["discount"] == 60

    order = fake_razorpay.orders[0]
    assert order["amount"] == 19900
    assert order["receipt"].startswith(f"ord_{str(user.id)[-6:]}_")
    assert order["notes"]["planType"] == "basic"
    assert order["notes"]["userRole"] == "freelancer"

    sub = db_session.get(SubscriptionEntity, data["dbSubscriptionId"])
    assert sub.status == "pending"
    assert sub.razorpay_order_id == data["orderId"]


def test_paid_plan_without_gateway_returns_503(offline_client, db_session, user):
    r = _create(offline_client, "pro", "yearly")
    assert r.status_code == 503, r.text
    assert r.json()["message"] == "Payment service is currently unavailable. Please try again later."
    assert db_session.query(SubscriptionEntity).filter(SubscriptionEntity.user_id == user.id).count() == 0


def test_gateway_failure_on_create_returns_500(client, fake_razorpay, db_session, user):
    fake_razorpay.fail = True

    r = _create(client, "basic", "monthly")
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to create payment order"
    assert db_session.query(SubscriptionEntity).filter(SubscriptionEntity.user_id == user.id).count() == 0


def test_verify_payment_activates_and_records_completed_payment(client, db_session, signer, user):
    sub_id = _pay(client, signer, payment_id="pay_happy")

    sub = db_session.get(SubscriptionEntity, sub_id)
    assert sub.status == "active"
    assert sub.razorpay_payment_id == "pay_happy"
    assert sub.last_payment_date is not None
    assert [e.payment_id for e in sub.payment_history] == ["pay_happy"]

    payment = db_session.query(PaymentEntity).filter(PaymentEntity.payer_id == user.id).one()
    assert payment.status == "completed"
    assert payment.amount == 199
    assert payment.subscription_id == sub_id
    assert payment.status_history[0].status == "completed"


def test_verify_payment_with_tampered_signature_cancels(client, db_session, signer):
    data = _create(client, "basic", "monthly").json()["data"]
    signature = signer.payment(data["orderId"], "pay_x")
    tampered = ("0" if signature[0] != "0" else "1") + signature[1:]

    r = _verify(
        client,
        data["dbSubscriptionId"],
        razorpay_order_id=data["orderId"],
        razorpay_payment_id="pay_x",
        razorpay_signature=tampered,
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Payment verification failed"

    sub = db_session.get(SubscriptionEntity, data["dbSubscriptionId"])
    assert sub.status == "cancelled"
    assert db_session.query(PaymentEntity).count() == 0


def test_cancelled_subscription_cannot_be_verified_later(client, signer):
    data = _create(client, "basic", "monthly").json()["data"]
    order_id = data["orderId"]
    _verify(client, data["dbSubscriptionId"], razorpay_order_id=order_id, razorpay_payment_id="p", razorpay_signature="bad")

    r = _verify(
        client,
        data["dbSubscriptionId"],
        razorpay_order_id=order_id,
        razorpay_payment_id="p",
        razorpay_signature=signer.payment(order_id, "p"),
    )
    assert r.status_code == 409, r.text


def test_verify_payment_with_missing_fields_fails(client, db_session):
    data = _create(client, "basic", "monthly").json()["data"]

    r = _verify(client, data["dbSubscriptionId"], razorpay_order_id=data["orderId"])
    assert r.status_code == 400
    assert db_session.get(SubscriptionEntity, data["dbSubscriptionId"]).status == "cancelled"


def test_verify_payment_rejects_order_of_another_subscription(client, db_session, signer):
    first = _create(client, "basic", "monthly").json()["data"]
    second = _create(client, "pro", "monthly").json()["data"]

    r = _verify(
        client,
        first["dbSubscriptionId"],
        razorpay_order_id=second["orderId"],
        razorpay_payment_id="pay_1",
        razorpay_signature=signer.payment(second["orderId"], "pay_1"),
    )
    assert r.status_code == 400
    assert db_session.get(SubscriptionEntity, first["dbSubscriptionId"]).status == "cancelled"


def test_verify_payment_unknown_subscription_returns_404(client):
    r = _verify(client, 99999, razorpay_order_id="o", razorpay_payment_id="p", razorpay_signature="s")
    assert r.status_code == 404
    assert r.json()["message"] == "Subscription not found"


def test_recurring_verification_uses_gateway_status(client, db_session, fake_razorpay):
    data = _create(client, "pro", "monthly").json()["data"]
    fake_razorpay.subscription_statuses["sub_live"] = "authenticated"

    r = client.post(
        "/api/subscription/verify-payment",
        json={
            "subscriptionId": data["dbSubscriptionId"],
            "paymentType": "recurring",
            "razorpay_subscription_id": "sub_live",
            "razorpay_payment_id": "pay_rec",
        },
    )
    assert r.status_code == 200, r.text

    sub = db_session.get(SubscriptionEntity, data["dbSubscriptionId"])
    assert sub.status == "active"
    assert sub.payment_type == "recurring"
    assert sub.razorpay_subscription_id == "sub_live"


def test_recurring_verification_fails_when_gateway_not_active(client, db_session):
    data = _create(client, "pro", "monthly").json()["data"]

    r = client.post(
        "/api/subscription/verify-payment",
        json={"subscriptionId": data["dbSubscriptionId"], "paymentType": "recurring", "razorpay_subscription_id": "sub_new"},
    )
    assert r.status_code == 400
    assert db_session.get(SubscriptionEntity, data["dbSubscriptionId"]).status == "cancelled"


def test_paid_activation_replaces_free_plan(client, db_session, signer, user):
    free_id = _create(client, "free", "monthly").json()["data"]["subscriptionId"]
    paid_id = _pay(client, signer)

    active = (
        db_session.query(SubscriptionEntity)
        .filter(SubscriptionEntity.user_id == user.id, SubscriptionEntity.status == "active")
        .all()
    )
    assert [s.id for s in active] == [paid_id]

    free = db_session.get(SubscriptionEntity, free_id)
    assert free.status == "cancelled"
    assert free.cancellation_reason == "Replaced by basic plan"


def test_status_without_subscription(client):
    r = client.get("/api/subscription/status")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data == {"hasActiveSubscription": False, "canPostGig": False, "subscription": None}


def test_status_reports_active_monthly_plan(client):
    _create(client, "free", "monthly")

    r = client.get("/api/subscription/status")
    data = r.json()["data"]
    assert data["hasActiveSubscription"] is True
    assert data["canPostGig"] is True
    summary = data["subscription"]
    assert summary["planType"] == "free"
    assert summary["isLifetime"] is False
    assert 28 <= summary["daysLeft"] <= 31
    assert summary["limits"]["maxApplications"] == 3
    assert summary["usage"] == {"gigsPosted": 0, "applicationsSubmitted": 0}


def test_status_expires_lapsed_subscription(client, db_session):
    sub_id = _create(client, "free", "monthly").json()["data"]["subscriptionId"]
    sub = db_session.get(SubscriptionEntity, sub_id)
    sub.end_date = datetime(2000, 1, 1)
    db_session.commit()

    r = client.get("/api/subscription/status")
    assert r.json()["data"]["hasActiveSubscription"] is False
    assert r.json()["message"] == "Subscription has expired"
    assert db_session.get(SubscriptionEntity, sub_id).status == "expired"


def test_lifetime_subscription_never_expires(client, db_session):
    sub_id = _create(client, "free", "lifetime").json()["data"]["subscriptionId"]
    sub = db_session.get(SubscriptionEntity, sub_id)
    assert sub.end_date.year - sub.start_date.year == 100

    sub.end_date = datetime(2000, 1, 1)
    db_session.commit()

    summary = client.get("/api/subscription/status").json()["data"]["subscription"]
    assert summary["isLifetime"] is True
    assert summary["isExpired"] is False
    assert summary["daysLeft"] is None
    assert db_session.get(SubscriptionEntity, sub_id).status == "active"


def test_manage_reports_usage_history_and_upgrades(client):
    _create(client, "free", "monthly")
    client.post("/api/subscription/usage/applications")

    r = client.get("/api/subscription/manage")
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["userRole"] == "freelancer"
    assert data["hasActiveSubscription"] is True

    current = data["currentSubscription"]
    assert current["usage"] == {"type": "applications", "used": 1, "limit": 3, "remaining": 2, "percentage": 33}
    assert current["billing"]["price"] == 0
    assert [o["planType"] for o in data["upgradeOptions"]] == ["basic", "pro"]
    assert len(data["subscriptionHistory"]) == 1


def test_manage_for_pro_plan_has_unlimited_usage_and_no_upgrades(client, signer):
    _pay(client, signer, plan_type="pro", duration="yearly")

    data = client.get("/api/subscription/manage").json()["data"]
    assert data["currentSubscription"]["usage"]["remaining"] == "unlimited"
    assert data["upgradeOptions"] is None
    assert len(data["paymentHistory"]) == 1


def test_manage_without_subscription(client):
    data = client.get("/api/subscription/manage").json()["data"]
    assert data["hasActiveSubscription"] is False
    assert data["currentSubscription"] is None
    assert data["upgradeOptions"] is None


def test_cancel_subscription(client, db_session):
    sub_id = _create(client, "free", "monthly").json()["data"]["subscriptionId"]

    r = client.patch("/api/subscription/manage", json={"action": "cancel"})
    assert r.status_code == 200, r.text
    assert r.json()["message"] == "Subscription cancelled successfully"

    sub = db_session.get(SubscriptionEntity, sub_id)
    assert sub.status == "cancelled"
    assert sub.cancellation_reason == "User requested cancellation"
    assert sub.cancelled_at is not None

    r = client.patch("/api/subscription/manage", json={"action": "cancel"})
    assert r.status_code == 404
    assert r.json()["message"] == "Active subscription not found"


def test_toggle_and_set_auto_renewal(client):
    _create(client, "free", "monthly")

    r = client.patch("/api/subscription/manage", json={"action": "toggle_renewal"})
    assert r.status_code == 200, r.text
    assert r.json()["data"]["autoRenewal"] is True
    assert r.json()["message"] == "Auto-renewal enabled"

    r = client.patch("/api/subscription/manage", json={"autoRenewal": False})
    assert r.json()["data"]["autoRenewal"] is False


def test_lifetime_has_no_auto_renewal(client):
    _create(client, "free", "lifetime")

    r = client.patch("/api/subscription/manage", json={"action": "toggle_renewal"})
    assert r.status_code == 400
    assert r.json()["message"] == "Lifetime subscriptions don't have auto-renewal"


def test_manage_rejects_unknown_action(client):
    _create(client, "free", "monthly")

    r = client.patch("/api/subscription/manage", json={"action": "upgrade"})
    assert r.status_code == 400
    assert r.json()["message"] == "Invalid action or parameters"


def test_usage_is_capped_by_plan_limit(client, db_session):
    sub_id = _create(client, "free", "monthly").json()["data"]["subscriptionId"]

    for expected in (1, 2, 3):
        r = client.post("/api/subscription/usage/applications")
        assert r.status_code == 200, r.text
        assert r.json()["data"]["used"] == expected

    r = client.post("/api/subscription/usage/applications")
    assert r.status_code == 403
    assert db_session.get(SubscriptionEntity, sub_id).applications_submitted == 3


def test_usage_requires_subscription_and_known_kind(client):
    assert client.post("/api/subscription/usage/applications").status_code == 403

    _create(client, "free", "monthly")
    assert client.post("/api/subscription/usage/gigs").status_code == 403
    assert client.post("/api/subscription/usage/posts").status_code == 400


def test_hiring_free_plan_allows_one_gig(hiring_client):
    _create(hiring_client, "free", "monthly")

    assert hiring_client.post("/api/subscription/usage/gigs").status_code == 200
    r = hiring_client.post("/api/subscription/usage/gigs")
    assert r.status_code == 403
    assert r.json()["message"] == "Plan limit reached: 1/1 gigs"


def test_verify_payment_survives_ledger_failure(client, db_session, signer, monkeypatch, caplog):
    def _failing_ledger(*args, **kwargs):
        raise SQLAlchemyError("ledger unavailable")

    monkeypatch.setattr(subscription_service, "record_payment", _failing_ledger)

    with caplog.at_level(logging.ERROR, logger="services.subscription_service"):
        sub_id = _pay(client, signer, payment_id="pay_noledger")

    assert "Failed to create payment record" in caplog.text
    sub = db_session.get(SubscriptionEntity, sub_id)
    assert sub.status == "active"
    assert [e.payment_id for e in sub.payment_history] == ["pay_noledger"]
    assert db_session.query(PaymentEntity).count() == 0


def test_status_reports_stored_limits_that_usage_enforces(client, db_session):
    sub_id = _create(client, "free", "monthly").json()["data"]["subscriptionId"]
    sub = db_session.get(SubscriptionEntity, sub_id)
    sub.limits = {"maxApplications": 5}
    db_session.commit()

    r = client.get("/api/subscription/status")
    assert r.json()["data"]["subscription"]["limits"]["maxApplications"] == 5

    for _ in range(4):
        assert client.post("/api/subscription/usage/applications").status_code == 200
    current = client.get("/api/subscription/manage").json()["data"]["currentSubscription"]
    assert current["usage"]["used"] == 4
    assert current["usage"]["limit"] == 5
