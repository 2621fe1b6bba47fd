# vaultrelay/core/inbox_index.py

import queue
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Set

from vaultrelay.core.message_store import MessageStore
from vaultrelay.models.message import Message


class InboxSubscription:
    """
    Per-recipient event channel.
    Receives the id of every message enqueued for the recipient while open.
    """

    def __init__(self, index: "InboxIndex", recipient: str):
        self.recipient = recipient
        self._index = index
        self._queue: "queue.Queue[str]" = queue.Queue()
        self.closed = False

    def _publish(self, message_id: str):
        self._queue.put_nowait(message_id)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next enqueued id, or None once timeout elapses."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        if not self.closed:
            self.closed = True
            self._index._unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class _InboxSlot:
    """Lock plus pending ids for one recipient; users counts current holders."""

    __slots__ = ("lock", "ids", "users")

    def __init__(self):
        self.lock = threading.RLock()
        # message_id -> None; dicts keep enqueue order
        self.ids: Dict[str, None] = {}
        self.users = 0


class InboxIndex:
    """
    Per-recipient ordered view of pending message ids.

    Each recipient has its own re-entrant lock so that callers can hold it
    across a MessageStore write (see locked()). Recipients never share a
    lock, so traffic for one inbox does not block another. A recipient's
    slot exists only while it has pending ids or someone holds its lock.
    """

    def __init__(self, store: MessageStore):
        self._store = store
        self._registry_lock = threading.Lock()
        self._slots: Dict[str, _InboxSlot] = {}
        self._subscribers: Dict[str, Set[InboxSubscription]] = {}

    # ---------------- locking ----------------

    def _acquire(self, recipient: str) -> _InboxSlot:
        with self._registry_lock:
            slot = self._slots.get(recipient)
            if slot is None:
                slot = self._slots[recipient] = _InboxSlot()
            slot.users += 1
            return slot

    def _release(self, recipient: str, slot: _InboxSlot):
        with self._registry_lock:
            slot.users -= 1
            if slot.users == 0 and not slot.ids:
                del self._slots[recipient]

    @contextmanager
    def locked(self, recipient: str):
        slot = self._acquire(recipient)
        try:
            with slot.lock:
                yield slot
        finally:
            self._release(recipient, slot)

    # ---------------- contract ----------------

    def enqueue(self, recipient: str, message_id: str) -> None:
        with self.locked(recipient) as slot:
            slot.ids[message_id] = None
            for sub in self._subscribers_of(recipient):
                sub._publish(message_id)

    def snapshot(self, recipient: str) -> List[Message]:
        with self.locked(recipient) as slot:
            messages = []
            for message_id in slot.ids:
                message = self._store.get(message_id)
                if message is not None:
                    messages.append(message)
            return messages

    def remove(self, recipient: str, message_id: str) -> bool:
        with self.locked(recipient) as slot:
            if message_id not in slot.ids:
                return False
            del slot.ids[message_id]
            return True

    def clear(self, recipient: str) -> List[str]:
        """Drop every pending entry for recipient. Returns the dropped ids."""
        with self.locked(recipient) as slot:
            dropped = list(slot.ids)
            slot.ids.clear()
            return dropped

    def contains(self, recipient: str, message_id: str) -> bool:
        with self.locked(recipient) as slot:
            return message_id in slot.ids

    def pending_ids(self, recipient: str) -> List[str]:
        with self.locked(recipient) as slot:
            return list(slot.ids)

    # ---------------- diagnostics ----------------

    def inbox_count(self) -> int:
        """Recipients with at least one pending message."""
        with self._registry_lock:
            return sum(1 for slot in self._slots.values() if slot.ids)

    def pending_count(self) -> int:
        with self._registry_lock:
            return sum(len(slot.ids) for slot in self._slots.values())

    # ---------------- subscriptions ----------------

    def subscribe(self, recipient: str) -> InboxSubscription:
        sub = InboxSubscription(self, recipient)
        with self._registry_lock:
            self._subscribers.setdefault(recipient, set()).add(sub)
        return sub

    def _unsubscribe(self, sub: InboxSubscription):
        with self._registry_lock:
            subs = self._subscribers.get(sub.recipient)
            if subs is not None:
                subs.discard(sub)
                if not subs:
                    del self._subscribers[sub.recipient]

    def _subscribers_of(self, recipient: str) -> List[InboxSubscription]:
        with self._registry_lock:
            return list(self._subscribers.get(recipient, ()))
