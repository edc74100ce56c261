from sqlalchemy import Column, DateTime, Integer, func
from sqlalchemy.orm import declared_attr


class BaseEntity:
    __abstract__ = True

    @declared_attr
    def id(cls):
        return Column(Integer, primary_key=True, index=True)

    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TimestampedEntity(BaseEntity):
    __abstract__ = True

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        )
