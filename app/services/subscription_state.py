"""
Subscription status transitions.

Every status change goes through ``transition``. Cancelled and expired are
terminal; only active and paused move back and forth.
"""
from __future__ import annotations

from models.enums import SubscriptionStatus

ACTIVATE = "activate"
EXPIRE = "expire"
CANCEL = "cancel"
PAUSE = "pause"
RESUME = "resume"

EVENTS: tuple[str, ...] = (ACTIVATE, EXPIRE, CANCEL, PAUSE, RESUME)

_PENDING = SubscriptionStatus.PENDING.value
_ACTIVE = SubscriptionStatus.ACTIVE.value
_EXPIRED = SubscriptionStatus.EXPIRED.value
_CANCELLED = SubscriptionStatus.CANCELLED.value
_PAUSED = SubscriptionStatus.PAUSED.value

TRANSITIONS: dict[tuple[str, str], str] = {
    (_PENDING, ACTIVATE): _ACTIVE,
    (_PENDING, CANCEL): _CANCELLED,
    (_ACTIVE, ACTIVATE): _ACTIVE,
    (_ACTIVE, EXPIRE): _EXPIRED,
    (_ACTIVE, CANCEL): _CANCELLED,
    (_ACTIVE, PAUSE): _PAUSED,
    (_ACTIVE, RESUME): _ACTIVE,
    (_PAUSED, EXPIRE): _EXPIRED,
    (_PAUSED, CANCEL): _CANCELLED,
    (_PAUSED, PAUSE): _PAUSED,
    (_PAUSED, RESUME): _ACTIVE,
    (_EXPIRED, EXPIRE): _EXPIRED,
    (_CANCELLED, CANCEL): _CANCELLED,
}


class IllegalTransitionError(ValueError):
    def __init__(self, current: str, event: str):
        super().__init__(f"Cannot {event} a subscription that is {current}")
        self.current = current
        self.event = event


def transition(current: str, event: str) -> str:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise IllegalTransitionError(current, event)


def can_transition(current: str, event: str) -> bool:
    return (current, event) in TRANSITIONS
