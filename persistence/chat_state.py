from __future__ import annotations

import bisect
from typing import Any, Mapping

from pydantic import BaseModel, Field

USERS_COLLECTION = "users"
CHATS_COLLECTION = "chats"


class MessageRecord(BaseModel):
    timestamp: int
    author: str
    message: str


class UserRecord(BaseModel):
    """
    On-disk users/<id>.json:
      { "username": "...", "password_hash": "...", "chats": ["<chat-id>", ...] }
    """

    username: str
    password_hash: str
    chats: list[str] = Field(default_factory=list)

    @classmethod
    def from_disk_doc(cls, doc: Mapping[str, Any]) -> "UserRecord":
        return cls.model_validate(doc)

    def to_disk_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def to_view(self) -> "UserView":
        return UserView(username=self.username, chats=list(self.chats))


class ChatRecord(BaseModel):
    """
    On-disk chats/<id>.json:
      { "name": "...", "private": false, "members": [...], "messages": [{timestamp, author, message}, ...] }

    `messages` is kept ascending by timestamp.
    """

    name: str
    private: bool = False
    members: list[str] = Field(default_factory=list)
    messages: list[MessageRecord] = Field(default_factory=list)

    @classmethod
    def from_disk_doc(cls, doc: Mapping[str, Any]) -> "ChatRecord":
        record = cls.model_validate(doc)
        record.messages.sort(key=lambda m: m.timestamp)
        return record

    def to_disk_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def with_message(self, message: MessageRecord) -> "ChatRecord":
        """Copy of this chat with `message` inserted in timestamp order (exact duplicates are ignored)."""
        messages = list(self.messages)
        if message not in messages:
            pos = bisect.bisect_right(messages, message.timestamp, key=lambda m: m.timestamp)
            messages.insert(pos, message)
        return self.model_copy(update={"messages": messages})

    def to_view(self, chat_id: str) -> "ChatView":
        return ChatView(id=chat_id, name=self.name, private=self.private, members=list(self.members))


class UserView(BaseModel):
    username: str
    chats: list[str] = Field(default_factory=list)


class ChatView(BaseModel):
    id: str
    name: str
    private: bool
    members: list[str] = Field(default_factory=list)
