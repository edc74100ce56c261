from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship

from db.base import Base
from core.base_classes import BaseEntity, TimestampedEntity


class PaymentEntity(Base, TimestampedEntity):
    __tablename__ = "payments"

    payer_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payee_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    subscription_id = Column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency = Column(String, nullable=False, default="INR")
    status = Column(String, nullable=False, default="pending")
    type = Column(String, nullable=False)
    payment_method = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)
    description = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)

    razorpay_order_id = Column(String, nullable=True)
    razorpay_payment_id = Column(String, nullable=True, index=True)
    razorpay_subscription_id = Column(String, nullable=True)
    razorpay_signature = Column(String, nullable=True)

    payer = relationship("UserEntity", back_populates="payments", foreign_keys=[payer_id])
    payee = relationship("UserEntity", foreign_keys=[payee_id])
    subscription = relationship("SubscriptionEntity", back_populates="payments")

    status_history = relationship(
        "PaymentStatusHistoryEntity",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentStatusHistoryEntity.id",
    )

    __table_args__ = (
        Index("ix_payments_payer_status", "payer_id", "status"),
        Index("ix_payments_type_status", "type", "status"),
    )


class PaymentStatusHistoryEntity(Base, BaseEntity):
    __tablename__ = "payment_status_history"

    payment_id = Column(
        Integer,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String, nullable=False)
    description = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False)

    payment = relationship("PaymentEntity", back_populates="status_history")
