"""
Unit tests for frontend/events.py - async event bus.
"""

import unittest

from tanos_lib.frontend.events import (
    EventBus, EventType, create_state_changed_event, create_swap_failed_event,
)
from tests.fixtures import run


class TestEventBus(unittest.TestCase):
    """Test handler registration and dispatch."""

    def test_emit_reaches_handlers_of_type(self):
        bus = EventBus()
        seen = []

        async def on_state(event):
            seen.append(event.data['new_state'])

        async def on_failed(event):
            seen.append('failed')

        bus.on(EventType.STATE_CHANGED, on_state)
        bus.on(EventType.SWAP_FAILED, on_failed)
        run(bus.emit(create_state_changed_event('buyer', 'abc', 'INIT', 'COMMITTED')))

        self.assertEqual(seen, ['COMMITTED'])

    def test_failing_handler_is_isolated(self):
        bus = EventBus()
        seen = []

        async def broken(event):
            raise RuntimeError('boom')

        async def working(event):
            seen.append(event.source)

        bus.on(EventType.SWAP_FAILED, broken)
        bus.on(EventType.SWAP_FAILED, working)
        with self.assertLogs('tanos.events', level='ERROR'):
            run(bus.emit(create_swap_failed_event('seller', 'abc', 'FAILED', 'oops')))

        self.assertEqual(seen, ['seller'])

    def test_off_and_clear(self):
        bus = EventBus()

        async def handler(event):
            pass

        bus.on(EventType.STATE_CHANGED, handler)
        bus.on(EventType.SWAP_FAILED, handler)
        self.assertEqual(bus.handler_count(), 2)

        self.assertTrue(bus.off(EventType.STATE_CHANGED, handler))
        self.assertFalse(bus.off(EventType.STATE_CHANGED, handler))
        self.assertFalse(bus.has_handlers(EventType.STATE_CHANGED))

        bus.clear()
        self.assertEqual(bus.handler_count(EventType.SWAP_FAILED), 0)

    def test_event_str(self):
        event = create_state_changed_event('seller', 'abc', 'INIT', 'COMMITTED')
        self.assertEqual(str(event), 'Event(STATE_CHANGED (swap_id, old_state...) from seller)')


if __name__ == '__main__':
    unittest.main()
