from __future__ import annotations

from .chat_state import ChatRecord, ChatView, MessageRecord, UserRecord, UserView
from .disk_store import Collection, Database, Document, IdDocument
from .errors import AlreadyLockedError, MalformedError, StoreError, StoreIOError, UnlockedError
from .interfaces import AsyncChatRepository
from .query import Condition, Where
from .repositories import DiskChatRepository, DispatcherClosed

__all__ = [
    "Database",
    "Collection",
    "Document",
    "IdDocument",
    "Condition",
    "Where",
    "StoreError",
    "StoreIOError",
    "MalformedError",
    "UnlockedError",
    "AlreadyLockedError",
    "AsyncChatRepository",
    "DiskChatRepository",
    "DispatcherClosed",
    "UserRecord",
    "ChatRecord",
    "MessageRecord",
    "UserView",
    "ChatView",
]
