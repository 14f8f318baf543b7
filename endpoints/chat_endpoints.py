from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chat_hub import ChatHub, Subscription
from persistence.chat_state import ChatRecord, ChatView, MessageRecord, UserRecord
from persistence.interfaces import AsyncChatRepository

from .auth_endpoints import current_user, websocket_user
from .deps import get_hub, get_repository

router = APIRouter(prefix="/chats", tags=["chats"])
logger = logging.getLogger(__name__)


class ChatInput(BaseModel):
    name: str
    private: bool = False
    members: list[str] = Field(default_factory=list)


class ChatCreated(BaseModel):
    id: str


class WsCommand(BaseModel):
    """Frame exchanged over /chats/{id}: {"from": "<username>", "message": {...}}."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from")
    message: MessageRecord

    def to_frame(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def _can_read(chat: ChatRecord, user: UserRecord) -> bool:
    return not chat.private or user.username in chat.members


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ChatCreated)
async def create_chat(
    body: ChatInput,
    _: UserRecord = Depends(current_user),
    repo: AsyncChatRepository = Depends(get_repository),
) -> ChatCreated:
    chat = ChatRecord(name=body.name, private=body.private, members=body.members)
    chat_id = await repo.insert_chat(chat)

    for username in body.members:
        if not await repo.link_chat(username, chat_id):
            logger.info("CHATS: member %s of chat %s does not exist; skipping", username, chat_id)
    return ChatCreated(id=chat_id)


@router.get("", response_model=list[ChatView])
async def get_user_chats(
    user: UserRecord = Depends(current_user),
    repo: AsyncChatRepository = Depends(get_repository),
) -> list[ChatView]:
    views: list[ChatView] = []
    for chat_id in user.chats:
        chat = await repo.get_chat(chat_id)
        if chat is not None:
            views.append(chat.to_view(chat_id))
    return views


@router.get("/{chat_id}/messages", response_model=list[MessageRecord])
async def get_chat_messages(
    chat_id: str,
    user: UserRecord = Depends(current_user),
    repo: AsyncChatRepository = Depends(get_repository),
) -> list[MessageRecord]:
    chat = await repo.get_chat(chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="chat not found")
    if not _can_read(chat, user):
        raise HTTPException(status_code=403, detail="not a member of this chat")
    return chat.messages


@router.websocket("/{chat_id}")
async def chat_socket(
    websocket: WebSocket,
    chat_id: str,
    user: UserRecord = Depends(websocket_user),
    repo: AsyncChatRepository = Depends(get_repository),
    hub: ChatHub = Depends(get_hub),
) -> None:
    chat = await repo.get_chat(chat_id)
    if chat is None or not _can_read(chat, user):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    sub = hub.subscribe(chat_id, user.username)
    logger.info("WS: %s connected to chat %s", user.username, chat_id)

    inbound = asyncio.create_task(_pump_inbound(websocket, sub, user, repo, hub))
    outbound = asyncio.create_task(_pump_outbound(websocket, sub))
    try:
        await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (inbound, outbound):
            task.cancel()
        await asyncio.gather(inbound, outbound, return_exceptions=True)
        sub.close()
        logger.info("WS: %s left chat %s", user.username, chat_id)


async def _pump_inbound(
    websocket: WebSocket,
    sub: Subscription,
    user: UserRecord,
    repo: AsyncChatRepository,
    hub: ChatHub,
) -> None:
    while True:
        try:
            text = await websocket.receive_text()
        except WebSocketDisconnect:
            return
        try:
            cmd = WsCommand.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug("WS: ignoring bad frame from %s: %r", user.username, e)
            continue
        if cmd.sender != user.username:
            logger.info("WS: %s tried to send as %s; ignored", user.username, cmd.sender)
            continue
        await repo.append_message(sub.chat_id, cmd.message)
        hub.publish(sub.chat_id, cmd.to_frame(), sender=user.username)


async def _pump_outbound(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        frame = await sub.receive()
        try:
            await websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError):
            return
