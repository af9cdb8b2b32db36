"""
Secret access behind a key/value interface with rotation notification.

Vendor credentials and API tokens are looked up by name; consumers that cache a
credential (an open HTTP client, a token validator) subscribe to the key and
rebuild when it rotates. Any vault client can stand in for EnvSecretStore.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)

RotationCallback = Callable[[str, Optional[str]], None]


class SecretStore(ABC):
    def __init__(self):
        self._subscribers: dict[str, list[RotationCallback]] = {}
        self._lock = threading.Lock()

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def require(self, key: str) -> str:
        value = self.get(key)
        if not value:
            raise RuntimeError(f"secret {key} not set")
        return value

    def subscribe(self, key: str, callback: RotationCallback) -> None:
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

    def notify_rotated(self, key: str) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(key, []))
        value = self.get(key)
        logger.info("Secret %s rotated; notifying %d subscriber(s)", key, len(callbacks))
        for cb in callbacks:
            cb(key, value)


class EnvSecretStore(SecretStore):
    """Reads process environment, with in-process overrides applied by rotate()."""

    def __init__(self, overrides: Optional[dict[str, str]] = None):
        super().__init__()
        self._overrides: dict[str, str] = dict(overrides or {})

    def get(self, key: str) -> Optional[str]:
        if key in self._overrides:
            return self._overrides[key]
        value = os.getenv(key)
        return value.strip() if value else None

    def rotate(self, key: str, value: str) -> None:
        self._overrides[key] = value
        self.notify_rotated(key)
