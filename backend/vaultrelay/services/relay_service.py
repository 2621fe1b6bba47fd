# vaultrelay/services/relay_service.py

import re
import time
from typing import Callable, Dict, List, Optional

from vaultrelay.core.errors import Conflict, InvalidInput, NotFound, PermissionDenied
from vaultrelay.core.ids import new_message_id
from vaultrelay.core.inbox_index import InboxIndex, InboxSubscription
from vaultrelay.core.message_store import MessageStore
from vaultrelay.models.message import Content, Message

CLIENT_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")


class RelayService:
    """
    Message relay and inbox engine.

    Owns a MessageStore and the InboxIndex derived from it. Every mutation
    that touches both runs under the recipient's inbox lock, store second,
    so no caller ever observes an inbox id missing from the store.

    Lifecycle per message: Created -> Pending -> (Delivered) -> Removed.
    """

    def __init__(
        self,
        store: Optional[MessageStore] = None,
        inboxes: Optional[InboxIndex] = None,
        max_content_bytes: Optional[int] = None,
        id_factory: Callable[[], str] = new_message_id,
    ):
        self.store = store or MessageStore()
        self.inboxes = inboxes or InboxIndex(self.store)
        self.max_content_bytes = max_content_bytes
        self._new_id = id_factory

    # ---------------- validation ----------------

    @staticmethod
    def _require(value, field: str):
        if value is None or (isinstance(value, (str, bytes)) and not value):
            raise InvalidInput(f"Missing required field: {field}")

    def _check_content(self, content: Content):
        self._require(content, "content")
        if not isinstance(content, (str, bytes)):
            raise InvalidInput("content must be text or bytes")
        if self.max_content_bytes is not None:
            size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
            if size > self.max_content_bytes:
                raise InvalidInput(
                    f"content too large ({size} bytes, max {self.max_content_bytes})"
                )

    # ---------------- operations ----------------

    def send(
        self,
        sender: str,
        recipient: str,
        content: Content,
        message_id: Optional[str] = None,
    ) -> str:
        """
        Store a message and make it pending for recipient in one step.

        message_id lets a client retry a send safely: if a live message with
        that id already exists the call is a no-op returning the same id, and
        a Conflict if the existing record is a different message.
        """
        self._require(sender, "from")
        self._require(recipient, "to")
        self._check_content(content)

        if message_id is not None and not CLIENT_ID_PATTERN.fullmatch(message_id):
            raise InvalidInput("id must be 1-128 URL-safe characters")

        if message_id is None:
            message_id = self._new_id()

        message = Message(
            id=message_id,
            sender=sender,
            recipient=recipient,
            content=content,
            timestamp=int(time.time() * 1000),
        )

        with self.inboxes.locked(recipient):
            existing = self.store.put_if_absent(message_id, message)
            if existing is not None:
                same = (
                    existing.sender == sender
                    and existing.recipient == recipient
                    and existing.content == content
                )
                if not same:
                    raise Conflict(f"Message id already in use: {message_id}")
                return message_id
            self.inboxes.enqueue(recipient, message_id)

        return message_id

    def fetch(self, user_id: str) -> List[Message]:
        """Pending messages for user_id. Pure read; safe to repeat."""
        self._require(user_id, "userId")
        return self.inboxes.snapshot(user_id)

    def acknowledge(self, message_id: str) -> Message:
        """Mark a message verified. Idempotent; does not remove it."""
        self._require(message_id, "id")
        updated = self.store.update(message_id, Message.mark_verified)
        if updated is None:
            raise NotFound(f"Message not found: {message_id}")
        return updated

    def remove(self, recipient: str, message_id: str) -> None:
        """
        Delete a pending message from the inbox and the store.
        A second call for the same id raises NotFound.
        """
        self._require(recipient, "userId")
        self._require(message_id, "messageId")

        with self.inboxes.locked(recipient):
            if (
                not self.inboxes.contains(recipient, message_id)
                or self.store.get(message_id) is None
            ):
                raise NotFound(f"Message not found: {message_id}")
            self.inboxes.remove(recipient, message_id)
            self.store.delete(message_id)

    def health(self) -> Dict[str, int]:
        return {
            "messageCount": self.store.count(),
            "inboxCount": self.inboxes.inbox_count(),
            "pendingCount": self.inboxes.pending_count(),
        }

    # ---------------- extensions ----------------

    def get_message(self, message_id: str) -> Message:
        self._require(message_id, "messageId")
        message = self.store.get(message_id)
        if message is None:
            raise NotFound(f"Message not found: {message_id}")
        return message

    def messages_for(self, user_id: str) -> List[Message]:
        """Every stored message the user sent or receives."""
        self._require(user_id, "userId")
        return [m for m in self.store.values() if m.involves(user_id)]

    def delete_message(self, message_id: str, requester: Optional[str] = None) -> Message:
        """
        Delete flow used by transports: only the sender or recipient may
        delete. Also removes records whose inbox entry was already cleared.
        """
        while True:
            recipient = self.get_message(message_id).recipient

            with self.inboxes.locked(recipient):
                # Records for recipient are only written under its lock, so
                # this read is stable until the lock is released.
                message = self.store.get(message_id)
                if message is None:
                    raise NotFound(f"Message not found: {message_id}")
                if message.recipient != recipient:
                    # Removed and re-sent to someone else meanwhile
                    continue
                if requester and not message.involves(requester):
                    raise PermissionDenied("Permission denied")
                self.inboxes.remove(recipient, message_id)
                self.store.delete(message_id)
                return message

    def clear_inbox(self, recipient: str, purge: bool = False) -> int:
        """
        Drop every pending entry for recipient.
        The stored records stay unless purge is set.
        """
        self._require(recipient, "userId")

        with self.inboxes.locked(recipient):
            if purge:
                for message_id in self.inboxes.pending_ids(recipient):
                    self.store.delete(message_id)
            return len(self.inboxes.clear(recipient))

    def subscribe(self, recipient: str) -> InboxSubscription:
        self._require(recipient, "userId")
        return self.inboxes.subscribe(recipient)

    def wait_for_messages(self, recipient: str, timeout: float) -> List[Message]:
        """
        Long-poll: return pending messages, waiting up to timeout seconds
        for one to arrive when the inbox is empty.
        """
        with self.subscribe(recipient) as sub:
            messages = self.fetch(recipient)
            if messages or timeout <= 0:
                return messages
            sub.get(timeout=timeout)
            return self.fetch(recipient)
