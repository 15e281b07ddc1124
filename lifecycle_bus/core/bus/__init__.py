"""Building blocks of LifecycleEventBus: listener registry, last-value cache, dedup window."""

from .dedup_window import DEFAULT_WINDOW, DedupWindow
from .last_value_cache import LastValueCache
from .subscriptions import Subscription, SubscriptionRegistry

__all__ = ["DEFAULT_WINDOW", "DedupWindow", "LastValueCache", "Subscription", "SubscriptionRegistry"]
