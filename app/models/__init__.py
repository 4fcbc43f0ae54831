from .user import User
from .subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from .webhook_event import WebhookEvent

__all__ = [
    "User",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "WebhookEvent",
]
