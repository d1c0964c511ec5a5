"""Внутристраничная шина событий (аналог window.dispatchEvent(CustomEvent)).

Обработчики вызываются синхронно, сразу после записи в хранилище, поэтому
любой подписчик видит уже сохранённые данные. ``detail`` - только подсказка:
источник истины всегда хранилище.
"""
import threading
from collections import defaultdict
from typing import Callable

from app.logger import logger

BOOKINGS_CHANGED = "bookings-changed"
NOTIFICATIONS_CHANGED = "notifications-changed"
WISHLIST_CHANGED = "wishlist-changed"
SESSION_CHANGED = "session-changed"


class EventBus:

    def __init__(self):
        self._handlers = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, callback: Callable[[dict], None]) -> Callable[[], None]:
        with self._lock:
            self._handlers[name].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._handlers[name]:
                    self._handlers[name].remove(callback)

        return unsubscribe

    def publish(self, name: str, detail: dict = None):
        with self._lock:
            handlers = list(self._handlers[name])
        logger.info(f"Event {name} -> {len(handlers)} listener(s)")
        for callback in handlers:
            try:
                callback(dict(detail or {}))
            except Exception:
                logger.exception(f"Listener for {name} failed")
