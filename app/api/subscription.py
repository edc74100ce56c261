from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.deps import get_current_user, get_db, get_gateway
from core.responses import api_response
from models.orm_user import UserEntity
from schemas.subscription import CreateSubscriptionIn, ManageSubscriptionIn, VerifyPaymentIn
from services import subscription_service, webhook_service
from services.gateway import RazorpayGateway


router = APIRouter(prefix="/subscription", tags=["Subscription"])


@router.get("/plans")
def get_plans(role: Optional[str] = Query(default=None)):
    data = subscription_service.get_plans(role)
    return api_response(data, "Plans retrieved successfully")


@router.post("/create")
def create_subscription(
    data: CreateSubscriptionIn,
    db: Session = Depends(get_db),
    user: UserEntity = Depends(get_current_user),
    gateway: Optional[RazorpayGateway] = Depends(get_gateway),
):
    result, message = subscription_service.create_subscription(db, gateway, user, data.plan_type, data.duration)
    return api_response(result, message)


@router.get("/status")
def subscription_status(db: Session = Depends(get_db), user: UserEntity = Depends(get_current_user)):
    result, message = subscription_service.check_subscription_status(db, user)
    return api_response(result, message)


@router.post("/verify-payment")
def verify_payment(
    data: VerifyPaymentIn,
    db: Session = Depends(get_db),
    user: UserEntity = Depends(get_current_user),
    gateway: Optional[RazorpayGateway] = Depends(get_gateway),
):
    result, message = subscription_service.verify_payment(db, gateway, user, data)
    return api_response(result, message)


@router.get("/manage")
def get_management(db: Session = Depends(get_db), user: UserEntity = Depends(get_current_user)):
    data = subscription_service.get_subscription_management(db, user)
    return api_response(data, "Subscription management data retrieved successfully")


@router.patch("/manage")
def update_settings(
    data: ManageSubscriptionIn,
    db: Session = Depends(get_db),
    user: UserEntity = Depends(get_current_user),
):
    result, message = subscription_service.update_subscription_settings(
        db, user, data.action, data.auto_renewal, data.subscription_id
    )
    return api_response(result, message)


@router.post("/usage/{kind}")
def record_usage(kind: str, db: Session = Depends(get_db), user: UserEntity = Depends(get_current_user)):
    data = subscription_service.record_usage(db, user, kind)
    return api_response(data, "Usage recorded")


@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: Optional[RazorpayGateway] = Depends(get_gateway),
    x_razorpay_signature: Optional[str] = Header(default=None),
    x_razorpay_event_id: Optional[str] = Header(default=None),
):
    # signature is computed over the exact bytes received
    raw_body = await request.body()
    await run_in_threadpool(
        webhook_service.handle_webhook, db, gateway, raw_body, x_razorpay_signature, x_razorpay_event_id
    )
    return api_response({}, "Webhook processed successfully")
