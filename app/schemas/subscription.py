from typing import Optional

from pydantic import BaseModel, Field


class CreateSubscriptionIn(BaseModel):
    plan_type: Optional[str] = Field(default=None, alias="planType")
    duration: Optional[str] = None

    class Config:
        populate_by_name = True


class VerifyPaymentIn(BaseModel):
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    subscription_id: int = Field(alias="subscriptionId")
    payment_type: str = Field(default="one-time", alias="paymentType")

    class Config:
        populate_by_name = True


class ManageSubscriptionIn(BaseModel):
    action: Optional[str] = None
    auto_renewal: Optional[bool] = Field(default=None, alias="autoRenewal")
    subscription_id: Optional[int] = Field(default=None, alias="subscriptionId")

    class Config:
        populate_by_name = True
