from __future__ import annotations

from typing import Protocol

from .chat_state import ChatRecord, MessageRecord, UserRecord


class AsyncChatRepository(Protocol):
    """
    Domain-level chat persistence interface. Every call is linearized through one consumer.
    """

    async def insert_user(self, user: UserRecord) -> str: ...
    async def get_user(self, username: str) -> UserRecord | None: ...
    async def list_users(self) -> list[UserRecord]: ...
    async def update_user(self, user: UserRecord) -> bool: ...
    async def link_chat(self, username: str, chat_id: str) -> bool: ...

    async def insert_chat(self, chat: ChatRecord) -> str: ...
    async def get_chat(self, chat_id: str) -> ChatRecord | None: ...
    async def append_message(self, chat_id: str, message: MessageRecord) -> bool: ...
