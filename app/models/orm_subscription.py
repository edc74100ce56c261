from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import relationship

from db.base import Base
from core.base_classes import BaseEntity, TimestampedEntity


class SubscriptionEntity(Base, TimestampedEntity):
    __tablename__ = "subscriptions"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_role = Column(String, nullable=False)

    plan_type = Column(String, nullable=False, default="free")
    duration = Column(String, nullable=False, default="monthly")
    price = Column(Integer, nullable=False, default=0)
    original_price = Column(Integer, nullable=False, default=0)
    discount = Column(Integer, nullable=False, default=0)

    status = Column(String, nullable=False, default="pending")
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    auto_renewal = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String, nullable=True)

    gigs_posted = Column(Integer, nullable=False, default=0)
    applications_submitted = Column(Integer, nullable=False, default=0)
    limits = Column(JSON, nullable=False, default=dict)

    # payment details
    payment_type = Column(String, nullable=False, default="one-time")
    razorpay_order_id = Column(String, nullable=True, index=True)
    razorpay_payment_id = Column(String, nullable=True)
    razorpay_subscription_id = Column(String, nullable=True, index=True)
    razorpay_signature = Column(String, nullable=True)
    last_payment_date = Column(DateTime, nullable=True)
    next_payment_date = Column(DateTime, nullable=True)

    user = relationship("UserEntity", back_populates="subscriptions")

    payment_history = relationship(
        "SubscriptionPaymentEntryEntity",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="SubscriptionPaymentEntryEntity.id",
    )

    payments = relationship("PaymentEntity", back_populates="subscription")

    __table_args__ = (
        Index(
            "uq_subscriptions_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_subscriptions_status_end_date", "status", "end_date"),
    )


class SubscriptionPaymentEntryEntity(Base, BaseEntity):
    __tablename__ = "subscription_payment_history"

    subscription_id = Column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    payment_id = Column(String, nullable=True)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    status = Column(String, nullable=False)
    paid_at = Column(DateTime, nullable=False)
    failure_reason = Column(String, nullable=True)

    subscription = relationship("SubscriptionEntity", back_populates="payment_history")
