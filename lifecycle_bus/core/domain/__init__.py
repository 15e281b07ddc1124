from .event_models import EventEnvelope, EventKey, EventStatus, KeyPolicy, new_correlation_id

__all__ = ["EventEnvelope", "EventKey", "EventStatus", "KeyPolicy", "new_correlation_id"]
