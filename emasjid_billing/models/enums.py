import enum


class Tier(str, enum.Enum):
    RAKYAT = "rakyat"
    PRO = "pro"
    PREMIUM = "premium"


class BillingCycle(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    SOFT_LOCKED = "soft_locked"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    TOYYIBPAY = "toyyibpay"
    MANUAL = "manual"


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = "available"
    AT_CAPACITY = "at-capacity"
    ON_LEAVE = "on-leave"
    INACTIVE = "inactive"
