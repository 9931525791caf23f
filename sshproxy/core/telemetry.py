"""
Lifecycle event collection
"""
from typing import Dict, Any, Optional, Callable
from dataclasses import dataclass, field
import time

from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class Event:
    """Event record"""
    name: str
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[Event], None]


class Telemetry:
    """
    Event collector.
    
    Events are side-channel only: a failing listener is logged and
    never propagates into the caller that recorded the event.
    """
    
    def __init__(self, max_records: int = 10000):
        self._max_records = max_records
        self._events: list[Event] = []
        self._listeners: list[EventListener] = []
    
    def record_event(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record an event and notify listeners"""
        event = Event(name=name, metadata=metadata or {})
        self._events.append(event)
        if len(self._events) > self._max_records:
            del self._events[0]
        
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Telemetry listener failed for event {name}")
    
    def subscribe(self, listener: EventListener) -> None:
        """Register a listener called for every recorded event"""
        self._listeners.append(listener)
    
    def unsubscribe(self, listener: EventListener) -> None:
        """Remove a previously registered listener"""
        if listener in self._listeners:
            self._listeners.remove(listener)
    
    def get_events(self, name: Optional[str] = None) -> list[Event]:
        """Get recorded events, optionally filtered by name"""
        if name is None:
            return self._events.copy()
        return [e for e in self._events if e.name == name]
    
    def count(self, name: str) -> int:
        """Count recorded events with the given name"""
        return sum(1 for e in self._events if e.name == name)
    
    def clear(self) -> None:
        """Clear all events"""
        self._events.clear()


# Global telemetry instance
_telemetry = Telemetry()


def get_telemetry() -> Telemetry:
    """Get global telemetry instance"""
    return _telemetry
