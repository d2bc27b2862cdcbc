from .event_bus import EventBus

__all__ = ["EventBus"]
