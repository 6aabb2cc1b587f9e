"""Process-wide record event notifications for embedding contexts."""

import json
import logging
import threading
from typing import Callable, List

from shared.enums import FormEvent


def to_parent_message(event_type):
    """Format an event as the JSON message posted to an embedding parent window."""
    if isinstance(event_type, FormEvent):
        event_type = event_type.value
    return json.dumps({'enketoEvent': event_type})


class Notifier:
    """Minimal signal hub carrying an event-type tag and optional arguments.

    Listener failures are logged and never reach the emitter.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._listeners: List[Callable] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Callable) -> Callable:
        """Register listener(event_type, *args). Returns the listener."""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Callable) -> bool:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
                return True
        return False

    def emit(self, event_type: FormEvent, *args):
        with self._lock:
            listeners = list(self._listeners)
        self.logger.debug(f"Emitting {event_type.value} to {len(listeners)} listener(s)")
        for listener in listeners:
            try:
                listener(event_type, *args)
            except Exception as e:
                self.logger.error(f"Error in listener for {event_type.value}: {e}")


# Global instance
_notifier = None
_notifier_lock = threading.Lock()


def get_notifier() -> Notifier:
    """Get or create the global notifier instance (thread-safe)."""
    global _notifier
    if _notifier is None:
        with _notifier_lock:
            if _notifier is None:
                _notifier = Notifier()
    return _notifier
