from models.orm_user import UserEntity
from models.orm_subscription import SubscriptionEntity, SubscriptionPaymentEntryEntity
from models.orm_payment import PaymentEntity, PaymentStatusHistoryEntity
from models.orm_webhook_event import WebhookEventEntity

__all__ = [
    "UserEntity",
    "SubscriptionEntity",
    "SubscriptionPaymentEntryEntity",
    "PaymentEntity",
    "PaymentStatusHistoryEntity",
    "WebhookEventEntity",
]
