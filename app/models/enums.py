from enum import Enum


class UserRole(str, Enum):
    FREELANCER = "freelancer"
    HIRING = "hiring"


class PlanType(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"


class Duration(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class PaymentType(str, Enum):
    FREE = "free"
    ONE_TIME = "one-time"
    RECURRING = "recurring"


class HistoryEntryStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentKind(str, Enum):
    SUBSCRIPTION = "subscription"
    GIG_PAYMENT = "gig_payment"
    GIG_ESCROW = "gig_escrow"
    MILESTONE_PAYMENT = "milestone_payment"
    REFUND = "refund"
    COMMISSION = "commission"
    PENALTY = "penalty"
    WITHDRAWAL = "withdrawal"


class UsageKind(str, Enum):
    GIGS = "gigs"
    APPLICATIONS = "applications"
