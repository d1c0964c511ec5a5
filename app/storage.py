"""Файловое key-value хранилище - аналог localStorage браузера.

Каждый экземпляр ``LocalStorage`` - это отдельный "контекст" (вкладка).
Все экземпляры над одним файлом видят одни и те же данные. Запись через
один экземпляр порождает ``StorageEvent`` во всех остальных живых
экземплярах этого процесса, но не в самом пишущем (как событие ``storage``
в браузере). Изменения, сделанные другим процессом, можно подхватить
через ``poll()``.
"""
import json
import os
import threading
import weakref
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from app.logger import logger

_registry: Dict[str, "weakref.WeakSet"] = {}
_locks: Dict[str, threading.RLock] = {}
_registry_lock = threading.Lock()


@dataclass
class StorageEvent:
    key: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    path: str


def _lock_for(path: str) -> threading.RLock:
    with _registry_lock:
        if path not in _locks:
            _locks[path] = threading.RLock()
        return _locks[path]


class LocalStorage:

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self._lock = _lock_for(self.path)
        self._listeners = []
        with _registry_lock:
            _registry.setdefault(self.path, weakref.WeakSet()).add(self)
        self._snapshot = self._read()

    # --- чтение/запись файла ---

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with self._lock:
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"Storage file {self.path} is corrupt, treating as empty: {e}")
                return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: Dict[str, str]):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = f"{self.path}.{threading.get_ident()}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    # --- API в духе localStorage ---

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str):
        with self._lock:
            data = self._read()
            old_value = data.get(key)
            data[key] = value
            self._write(data)
            self._snapshot[key] = value
        if old_value != value:
            self._broadcast(StorageEvent(key, old_value, value, self.path))

    def remove_item(self, key: str):
        with self._lock:
            data = self._read()
            if key not in data:
                return
            old_value = data.pop(key)
            self._write(data)
            self._snapshot.pop(key, None)
        self._broadcast(StorageEvent(key, old_value, None, self.path))

    def clear(self):
        with self._lock:
            self._write({})
            self._snapshot = {}
        self._broadcast(StorageEvent(None, None, None, self.path))

    def lock(self) -> threading.RLock:
        """Блокировка файла для чтения-изменения-записи в пределах процесса"""
        return self._lock

    def keys(self):
        return list(self._read().keys())

    def get_json(self, key: str, default=None):
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Value under '{key}' is not valid JSON, using default")
            return default

    def set_json(self, key: str, value):
        self.set_item(key, json.dumps(value, ensure_ascii=False, default=str))

    # --- события ---

    def add_listener(self, callback: Callable[[StorageEvent], None]) -> Callable[[], None]:
        """Подписка на изменения из других контекстов. Возвращает функцию отписки"""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _broadcast(self, event: StorageEvent):
        with _registry_lock:
            peers = [s for s in _registry.get(self.path, ()) if s is not self]
        for peer in peers:
            peer._receive(event)

    def _receive(self, event: StorageEvent):
        if event.key is None:
            self._snapshot = {}
        elif event.new_value is None:
            self._snapshot.pop(event.key, None)
        else:
            self._snapshot[event.key] = event.new_value
        self._dispatch(event)

    def _dispatch(self, event: StorageEvent):
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Storage listener failed for key '{event.key}'")

    def poll(self) -> int:
        """Подхватить изменения файла, сделанные другим процессом.

        Возвращает число доставленных событий.
        """
        current = self._read()
        previous = self._snapshot
        self._snapshot = dict(current)
        delivered = 0
        for key in sorted(set(previous) | set(current)):
            if previous.get(key) != current.get(key):
                self._dispatch(StorageEvent(key, previous.get(key), current.get(key), self.path))
                delivered += 1
        return delivered
