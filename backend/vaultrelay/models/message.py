# vaultrelay/models/message.py

import base64
from dataclasses import dataclass, replace
from typing import Union

Content = Union[str, bytes]


@dataclass(frozen=True)
class Message:
    id: str
    sender: str         # "from" on the wire
    recipient: str      # "to" on the wire
    content: Content
    timestamp: int      # ms since epoch, informative only
    verified: bool = False

    def mark_verified(self) -> "Message":
        if self.verified:
            return self
        return replace(self, verified=True)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.sender, self.recipient)

    def to_dict(self) -> dict:
        content = self.content
        if isinstance(content, bytes):
            # Binary payloads often are not valid UTF-8
            try:
                content = content.decode("utf-8")
            except UnicodeDecodeError:
                content = base64.b64encode(content).decode("utf-8")

        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "content": content,
            "timestamp": self.timestamp,
            "verified": self.verified,
        }
