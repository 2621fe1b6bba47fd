# vaultrelay/api/inbox.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from vaultrelay.api.dependencies import get_relay
from vaultrelay.services.relay_service import RelayService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inbox")


@router.get("")
def get_inbox(
    request: Request,
    userId: Optional[str] = None,
    wait: float = 0,
    relay: RelayService = Depends(get_relay),
):
    """
    Pending messages for userId. With wait > 0 the request long-polls until a
    message arrives or the (capped) wait elapses.
    """
    max_wait = request.app.state.settings.max_wait_seconds
    timeout = max(0.0, min(wait, max_wait))

    if timeout:
        messages = relay.wait_for_messages(userId, timeout)
    else:
        messages = relay.fetch(userId)

    payload = [m.to_dict() for m in messages]
    return {"userId": userId, "messages": payload, "inbox": payload}


@router.delete("")
def clear_inbox(
    userId: Optional[str] = None,
    purge: bool = False,
    relay: RelayService = Depends(get_relay),
):
    cleared = relay.clear_inbox(userId, purge=purge)
    logger.info(
        f"Inbox cleared ({cleared} entries, purge={purge})",
        extra={"user_id": userId, "action": "clear_inbox"},
    )
    return {"success": True, "cleared": cleared, "message": "Inbox cleared successfully"}
