"""
Event bus system for async event-driven architecture.

This module provides:
- EventType enum for type-safe event identification
- Event dataclass for structured event data
- EventBus class for async pub/sub event handling

Swap sessions publish their progress on the bus; frontends subscribe to
render it without the sessions knowing who is listening.
"""

import asyncio
import logging
from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Awaitable
from datetime import datetime

logger = logging.getLogger('tanos.events')


class EventType(Enum):
    """
    Enumeration of all event types in the application.

    Using auto() ensures unique values and prevents conflicts.
    """
    # Swap lifecycle
    STATE_CHANGED = auto()
    COMMITMENT_PUBLISHED = auto()
    FUNDING_REQUESTED = auto()
    FUNDING_CONFIRMED = auto()
    PRESIGNATURE_CREATED = auto()
    PRESIGNATURE_VERIFIED = auto()
    SECRET_REVEALED = auto()
    CLAIM_BROADCAST = auto()
    CLAIM_AUDITED = auto()
    SWAP_FAILED = auto()


@dataclass
class Event:
    """
    Structured event data.

    Attributes:
        event_type: Type of event (from EventType enum)
        data: Event-specific payload (optional)
        timestamp: When the event was created
        source: Optional identifier for event source (e.g., "seller", "buyer")
    """
    event_type: EventType
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)
    source: Optional[str] = None

    def __str__(self) -> str:
        data_preview = ""
        if self.data:
            keys = list(self.data.keys())[:2]
            data_preview = f" ({', '.join(keys)}...)" if keys else ""

        source_info = f" from {self.source}" if self.source else ""
        return f"Event({self.event_type.name}{data_preview}{source_info})"


# Type alias for event handlers (async callbacks)
EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    Async event bus for pub/sub event handling.

    Example:
        >>> bus = EventBus()
        >>>
        >>> async def on_state(event: Event):
        ...     print(f"{event.source}: {event.data['new_state']}")
        >>>
        >>> bus.on(EventType.STATE_CHANGED, on_state)
        >>> await bus.emit(create_state_changed_event('buyer', 'abc', 'INIT', 'COMMITTED'))
    """

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Register an event handler for a specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Async callback function to handle the event
        """
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> bool:
        """
        Unregister an event handler.

        Returns:
            True if handler was found and removed, False otherwise
        """
        if event_type not in self._handlers:
            return False

        try:
            self._handlers[event_type].remove(handler)
            if not self._handlers[event_type]:
                del self._handlers[event_type]
            return True
        except ValueError:
            return False

    def clear(self, event_type: Optional[EventType] = None) -> None:
        """Clear all handlers for a specific event type, or all handlers."""
        if event_type is None:
            self._handlers.clear()
        elif event_type in self._handlers:
            del self._handlers[event_type]

    async def emit(self, event: Event) -> None:
        """
        Emit an event to all registered handlers asynchronously.

        Handlers run concurrently; a handler that raises is logged and does
        not affect the others or the emitter.
        """
        handlers = self._handlers.get(event.event_type, []).copy()
        if handlers:
            await asyncio.gather(*(self._safe_call_handler(h, event) for h in handlers))

    async def _safe_call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Error in event handler for {event.event_type.name}: {e}")

    def has_handlers(self, event_type: EventType) -> bool:
        return bool(self._handlers.get(event_type))

    def handler_count(self, event_type: Optional[EventType] = None) -> int:
        """Number of registered handlers (all types when event_type is None)."""
        if event_type is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        return len(self._handlers.get(event_type, []))


# Convenience functions for creating common events

def create_state_changed_event(role: str, swap_id: str, old_state: str, new_state: str) -> Event:
    """Create a STATE_CHANGED event."""
    return Event(
        EventType.STATE_CHANGED,
        {'swap_id': swap_id, 'old_state': old_state, 'new_state': new_state},
        source=role
    )


def create_funding_requested_event(role: str, swap_id: str, script_hex: str, amount: int) -> Event:
    """Create a FUNDING_REQUESTED event."""
    return Event(
        EventType.FUNDING_REQUESTED,
        {'swap_id': swap_id, 'script': script_hex, 'amount': amount},
        source=role
    )


def create_claim_broadcast_event(role: str, swap_id: str, txid: str) -> Event:
    """Create a CLAIM_BROADCAST event."""
    return Event(
        EventType.CLAIM_BROADCAST,
        {'swap_id': swap_id, 'txid': txid},
        source=role
    )


def create_swap_failed_event(role: str, swap_id: str, state: str, error: str) -> Event:
    """Create a SWAP_FAILED event."""
    return Event(
        EventType.SWAP_FAILED,
        {'swap_id': swap_id, 'state': state, 'error': error},
        source=role
    )
