"""
Best-effort analytics sink for quiz events.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Tuple


class LoggingAnalyticsSink:
    """
    Records quiz events as structured log entries.

    Events are also kept in memory (bounded) so the front end can report
    recent activity.
    """

    def __init__(self, max_events: int = 1000):
        self.logger = logging.getLogger(__name__)
        self._max_events = max_events
        self._events: List[Tuple[str, Dict[str, Any]]] = []

    def record_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        """Record a single analytics event."""
        attributes = dict(attributes or {})
        self._events.append((name, attributes))
        if len(self._events) > self._max_events:
            del self._events[:len(self._events) - self._max_events]

        self.logger.info(
            f"Analytics event: {name}",
            extra={
                'event_type': 'analytics_event',
                'event_name': name,
                'attributes': attributes,
                'timestamp': time.time()
            }
        )

    def get_events(self, name: Optional[str] = None) -> List[Tuple[str, Dict[str, Any]]]:
        """Return recorded events, optionally filtered by name."""
        if name is None:
            return list(self._events)
        return [event for event in self._events if event[0] == name]
