from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


def posts_key(user_id: str) -> str:
    return f"posts:{user_id}"


def subscription_key(user_id: str) -> str:
    return f"subscription:{user_id}"


class Unsubscribe:
    """Handle returned from ListenerRegistry.subscribe. Calling it more than once is a no-op."""

    def __init__(self, registry: "ListenerRegistry", key: str, token: int):
        self._registry = registry
        self._key = key
        self._token = token
        self.active = True

    def __call__(self):
        if not self.active:
            return
        self.active = False
        self._registry._remove(self._key, self._token)


class ListenerRegistry:
    """Push-notification registry keyed by entity (e.g. posts:<uid>, subscription:<uid>)"""

    def __init__(self):
        self._listeners: Dict[str, Dict[int, Listener]] = defaultdict(dict)
        self._next_token = 0
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def subscribe(self, key: str, callback: Listener) -> Unsubscribe:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[key][token] = callback
        self.logger.debug(f"subscribe: key: {key}, token: {token}")
        return Unsubscribe(self, key, token)

    def _remove(self, key: str, token: int):
        with self._lock:
            listeners = self._listeners.get(key)
            if listeners is None:
                return
            listeners.pop(token, None)
            if not listeners:
                del self._listeners[key]
        self.logger.debug(f"unsubscribe: key: {key}, token: {token}")

    def notify(self, key: str, payload: Any) -> int:
        """Deliver payload to every listener of key. Returns the number of listeners called."""
        with self._lock:
            callbacks: List[Listener] = list(self._listeners.get(key, {}).values())

        delivered = 0
        for callback in callbacks:
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                self.logger.error(f"notify: Listener failure - key: {key}, error: {e}")
        return delivered

    def listener_count(self, key: str) -> int:
        with self._lock:
            return len(self._listeners.get(key, {}))


_registry: Optional[ListenerRegistry] = None


def get_listener_registry() -> ListenerRegistry:
    """Get the process-wide registry used by the API layer"""
    global _registry
    if _registry is None:
        _registry = ListenerRegistry()
    return _registry
