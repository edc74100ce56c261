from sqlalchemy import Column, DateTime, String

from db.base import Base
from core.base_classes import BaseEntity


class WebhookEventEntity(Base, BaseEntity):
    __tablename__ = "processed_webhook_events"

    event_id = Column(String, unique=True, nullable=False, index=True)
    event_type = Column(String, nullable=False)
    processed_at = Column(DateTime, nullable=False)
