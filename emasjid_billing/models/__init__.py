from .subscription_model import Subscription
from .transaction_model import PaymentTransaction
from .local_admin_model import LocalAdmin, LocalAdminMonthlyEarning, LocalAdminAssignment
from .log_model import BillingEvent

__all__ = [
    "Subscription",
    "PaymentTransaction",
    "LocalAdmin",
    "LocalAdminMonthlyEarning",
    "LocalAdminAssignment",
    "BillingEvent",
]
