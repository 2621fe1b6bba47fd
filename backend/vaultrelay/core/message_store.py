# vaultrelay/core/message_store.py

import threading
from typing import Callable, Dict, List, Optional

from vaultrelay.models.message import Message


class MessageStore:
    """
    Authoritative map from message id to message record.
    Every method is a single atomic operation under the store lock.
    """

    def __init__(self, lock: Optional[threading.Lock] = None):
        self._lock = lock or threading.Lock()
        self._messages: Dict[str, Message] = {}

    def put(self, message_id: str, message: Message) -> None:
        with self._lock:
            self._messages[message_id] = message

    def put_if_absent(self, message_id: str, message: Message) -> Optional[Message]:
        """Insert unless the id is taken. Returns the existing record, if any."""
        with self._lock:
            existing = self._messages.get(message_id)
            if existing is None:
                self._messages[message_id] = message
            return existing

    def get(self, message_id: str) -> Optional[Message]:
        with self._lock:
            return self._messages.get(message_id)

    def delete(self, message_id: str) -> bool:
        with self._lock:
            return self._messages.pop(message_id, None) is not None

    def update(
        self, message_id: str, fn: Callable[[Message], Message]
    ) -> Optional[Message]:
        """Replace a record with fn(record). Returns None if the id is unknown."""
        with self._lock:
            current = self._messages.get(message_id)
            if current is None:
                return None
            updated = fn(current)
            self._messages[message_id] = updated
            return updated

    def values(self) -> List[Message]:
        with self._lock:
            return list(self._messages.values())

    def count(self) -> int:
        with self._lock:
            return len(self._messages)

    def __contains__(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._messages
