# vaultrelay/api/messages.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from vaultrelay.api.dependencies import get_relay
from vaultrelay.core.errors import InvalidInput
from vaultrelay.services.relay_service import RelayService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages")


class SendMessageSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: Optional[str] = Field(default=None, alias="from")
    recipient: Optional[str] = Field(default=None, alias="to")
    content: Optional[str] = None
    # Client-chosen id makes retried sends idempotent
    id: Optional[str] = None


class AcknowledgeSchema(BaseModel):
    id: Optional[str] = None


@router.post("")
def send_message(payload: SendMessageSchema, relay: RelayService = Depends(get_relay)):
    message_id = relay.send(
        payload.sender, payload.recipient, payload.content, message_id=payload.id
    )
    logger.info(
        f"Message sent: {payload.sender} -> {payload.recipient}",
        extra={"message_id": message_id, "action": "send"},
    )
    return {"success": True, "id": message_id, "messageId": message_id}


@router.get("")
def get_messages(
    messageId: Optional[str] = None,
    userId: Optional[str] = None,
    relay: RelayService = Depends(get_relay),
):
    if messageId:
        return {"message": relay.get_message(messageId).to_dict()}
    if userId:
        return {"messages": [m.to_dict() for m in relay.messages_for(userId)]}
    raise InvalidInput("messageId or userId required")


@router.patch("")
def acknowledge_message(payload: AcknowledgeSchema, relay: RelayService = Depends(get_relay)):
    message = relay.acknowledge(payload.id)
    logger.info("Message acknowledged", extra={"message_id": message.id, "action": "ack"})
    return {"success": True, "message": message.to_dict()}


@router.delete("")
def delete_message(
    messageId: Optional[str] = None,
    userId: Optional[str] = None,
    relay: RelayService = Depends(get_relay),
):
    if not messageId:
        raise InvalidInput("Message ID required")

    relay.delete_message(messageId, requester=userId)
    logger.info("Message deleted", extra={"message_id": messageId, "action": "delete"})
    return {"success": True, "message": "Message deleted successfully"}
