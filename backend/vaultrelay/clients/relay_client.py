# vaultrelay/clients/relay_client.py

import logging
import threading
from typing import Callable, Dict, List, Optional

import requests

from vaultrelay.core.errors import (
    Conflict,
    InvalidInput,
    NotFound,
    PermissionDenied,
    RelayError,
)

logger = logging.getLogger(__name__)

# =========================
# CONFIGURATION
# =========================

SERVER_URL = "http://127.0.0.1:8000"
LONG_POLL_SECONDS = 20      # server-side wait per inbox request
RETRY_DELAY_SECONDS = 2     # back-off after a failed poll
REQUEST_TIMEOUT = 10        # added on top of the long-poll wait

_ERRORS_BY_STATUS = {
    400: InvalidInput,
    403: PermissionDenied,
    404: NotFound,
    409: Conflict,
}

MessageHandler = Callable[[Dict], None]


class RelayClient:
    """
    Client session for one identity.

    Delivery is at-least-once: a message is handled, acknowledged, then
    deleted. Ids already handled by this session are skipped, and a message
    that comes back verified (we died between acknowledge and delete) is
    only deleted, not handled again.
    """

    def __init__(
        self,
        user_id: str,
        server_url: str = SERVER_URL,
        session=None,
        long_poll_seconds: float = LONG_POLL_SECONDS,
    ):
        self.user_id = user_id
        self.server_url = server_url.rstrip("/")
        self.session = session or requests.Session()
        self.long_poll_seconds = long_poll_seconds
        self.seen = set()

    # ---------------- transport ----------------

    def _request(self, method: str, path: str, timeout: float = REQUEST_TIMEOUT, **kwargs):
        resp = getattr(self.session, method)(
            f"{self.server_url}{path}", timeout=timeout, **kwargs
        )
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            error_cls = _ERRORS_BY_STATUS.get(resp.status_code, RelayError)
            raise error_cls(detail)
        return resp.json()

    # ---------------- operations ----------------

    def register(self) -> bool:
        """Register this identity. Returns False if it was already taken."""
        try:
            self._request("post", "/users", json={"userId": self.user_id})
        except Conflict:
            logger.info(f"User {self.user_id} already registered")
            return False
        return True

    def send(self, recipient: str, content: str, message_id: Optional[str] = None) -> str:
        body = {"from": self.user_id, "to": recipient, "content": content}
        if message_id:
            body["id"] = message_id
        return self._request("post", "/messages", json=body)["id"]

    def inbox(self, wait: float = 0) -> List[Dict]:
        params = {"userId": self.user_id}
        if wait:
            params["wait"] = wait
        data = self._request(
            "get", "/inbox", params=params, timeout=REQUEST_TIMEOUT + wait
        )
        return data["messages"]

    def acknowledge(self, message_id: str) -> Dict:
        return self._request("patch", "/messages", json={"id": message_id})["message"]

    def delete(self, message_id: str) -> bool:
        """Delete a message. False means it was already gone."""
        try:
            self._request(
                "delete",
                "/messages",
                params={"messageId": message_id, "userId": self.user_id},
            )
        except NotFound:
            return False
        return True

    # ---------------- receiving ----------------

    def poll_once(self, handler: MessageHandler, wait: float = 0) -> int:
        """Fetch the inbox once and process it. Returns how many messages were handled."""
        handled = 0
        for msg in self.inbox(wait=wait):
            message_id = msg["id"]

            if message_id not in self.seen and not msg.get("verified"):
                handler(msg)
                handled += 1
                self.seen.add(message_id)
                self.acknowledge(message_id)
            else:
                self.seen.add(message_id)

            if not self.delete(message_id):
                logger.debug(f"Message {message_id} already removed")

        return handled

    def run(self, handler: MessageHandler, stop_event: Optional[threading.Event] = None):
        """Receive until stop_event is set, long-polling the inbox."""
        stop_event = stop_event or threading.Event()
        while not stop_event.is_set():
            try:
                self.poll_once(handler, wait=self.long_poll_seconds)
            except (requests.RequestException, RelayError) as e:
                logger.warning(f"Polling inbox for {self.user_id} failed: {e}")
                stop_event.wait(RETRY_DELAY_SECONDS)
