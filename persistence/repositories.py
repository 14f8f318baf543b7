from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Union

from pydantic import ValidationError

from .chat_state import (
    CHATS_COLLECTION,
    USERS_COLLECTION,
    ChatRecord,
    MessageRecord,
    UserRecord,
)
from .disk_store import Database, IdDocument
from .errors import StoreError
from .interfaces import AsyncChatRepository
from .query import Condition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsertUser:
    user: UserRecord


@dataclass(frozen=True)
class GetUser:
    username: str


@dataclass(frozen=True)
class ListUsers:
    pass


@dataclass(frozen=True)
class UpdateUser:
    user: UserRecord


@dataclass(frozen=True)
class InsertChat:
    chat: ChatRecord


@dataclass(frozen=True)
class GetChat:
    chat_id: str


@dataclass(frozen=True)
class AppendMessage:
    chat_id: str
    message: MessageRecord


@dataclass(frozen=True)
class LinkChat:
    username: str
    chat_id: str


Request = Union[InsertUser, GetUser, ListUsers, UpdateUser, LinkChat, InsertChat, GetChat, AppendMessage]


@dataclass
class _Envelope:
    request: Request
    reply: asyncio.Future


class DispatcherClosed(RuntimeError):
    pass


class DiskChatRepository(AsyncChatRepository):
    """
    Owns the on-disk Database and serializes every call through one mailbox.

    Callers put a request plus a reply future on an unbounded queue; a single
    consumer task runs the requests one at a time, each in a worker thread so
    file I/O does not block the event loop. Nothing else touches the files.

    A caller that stops waiting (cancelled) only loses the reply: the request
    still runs to completion.
    """

    def __init__(self, base: Path) -> None:
        self._base = base
        self._db: Database | None = None
        self._queue: asyncio.Queue[_Envelope | None] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._closed = False
        self._handlers: dict[type, Callable[[Any], Any]] = {
            InsertUser: self._insert_user,
            GetUser: self._get_user,
            ListUsers: self._list_users,
            UpdateUser: self._update_user,
            LinkChat: self._link_chat,
            InsertChat: self._insert_chat,
            GetChat: self._get_chat,
            AppendMessage: self._append_message,
        }

    async def start(self) -> None:
        """Open the database and take the process lock (AlreadyLockedError if another process holds it)."""
        if self._consumer is not None:
            return
        self._db = await asyncio.to_thread(self._open_locked)
        self._queue = asyncio.Queue()
        self._closed = False
        self._consumer = asyncio.create_task(self._run(), name="store-consumer")
        logger.info("STORE: consumer started on %s (pid=%s)", self._base, self._db.pid)

    def _open_locked(self) -> Database:
        db = Database(self._base)
        db.lock()
        return db

    async def close(self) -> None:
        """Finish the in-flight request, drop pending ones, release the lock."""
        if self._consumer is None or self._queue is None or self._closed:
            return
        self._closed = True

        dropped = 0
        while True:
            try:
                envelope = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if envelope is not None and not envelope.reply.done():
                envelope.reply.set_exception(DispatcherClosed("store is shutting down"))
                dropped += 1
        if dropped:
            logger.warning("STORE: dropped %d pending requests on shutdown", dropped)

        self._queue.put_nowait(None)
        await self._consumer
        self._consumer = None

        if self._db is not None:
            await asyncio.to_thread(self._db.close)
        logger.info("STORE: consumer stopped, lock released")

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            envelope = await self._queue.get()
            if envelope is None:
                return
            handler = self._handlers[type(envelope.request)]
            try:
                result = await asyncio.to_thread(handler, envelope.request)
            except Exception as e:
                if envelope.reply.done():
                    logger.warning("STORE: %s failed after its caller left: %r", type(envelope.request).__name__, e)
                else:
                    envelope.reply.set_exception(e)
                continue
            if not envelope.reply.done():
                envelope.reply.set_result(result)

    async def _submit(self, request: Request) -> Any:
        if self._queue is None or self._closed:
            raise DispatcherClosed("store is not running")
        reply = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Envelope(request, reply))
        return await reply

    # Public API

    async def insert_user(self, user: UserRecord) -> str:
        return await self._submit(InsertUser(user))

    async def get_user(self, username: str) -> UserRecord | None:
        return await self._submit(GetUser(username))

    async def list_users(self) -> list[UserRecord]:
        return await self._submit(ListUsers())

    async def update_user(self, user: UserRecord) -> bool:
        return await self._submit(UpdateUser(user))

    async def link_chat(self, username: str, chat_id: str) -> bool:
        return await self._submit(LinkChat(username, chat_id))

    async def insert_chat(self, chat: ChatRecord) -> str:
        return await self._submit(InsertChat(chat))

    async def get_chat(self, chat_id: str) -> ChatRecord | None:
        return await self._submit(GetChat(chat_id))

    async def append_message(self, chat_id: str, message: MessageRecord) -> bool:
        return await self._submit(AppendMessage(chat_id, message))

    # Handlers: run on the worker thread, one at a time.

    def _require_db(self) -> Database:
        if self._db is None:
            raise DispatcherClosed("store is not running")
        return self._db

    def _find_user(self, username: str) -> IdDocument | None:
        found = self._require_db().where(USERS_COLLECTION, "username", Condition.EQUAL, username)
        return next(iter(found), None)

    def _insert_user(self, req: InsertUser) -> str:
        return self._require_db().insert(USERS_COLLECTION, req.user.to_disk_doc())

    def _get_user(self, req: GetUser) -> UserRecord | None:
        item = self._find_user(req.username)
        if item is None:
            return None
        payload = item.doc.get()
        return UserRecord.from_disk_doc(payload) if payload is not None else None

    def _list_users(self, req: ListUsers) -> list[UserRecord]:
        users: list[UserRecord] = []
        for item in self._require_db().list(USERS_COLLECTION):
            try:
                payload = item.doc.get()
            except StoreError as e:
                logger.error("STORE: failed to read user %s: %s", item.id, e)
                continue
            if payload is None:
                logger.warning("STORE: user document %s vanished during listing", item.id)
                continue
            try:
                users.append(UserRecord.from_disk_doc(payload))
            except ValidationError as e:
                logger.error("STORE: user document %s has an unexpected shape: %s", item.id, e)
        return users

    def _update_user(self, req: UpdateUser) -> bool:
        item = self._find_user(req.user.username)
        if item is None:
            return False
        return self._require_db().update(USERS_COLLECTION, item.id, req.user.to_disk_doc())

    def _link_chat(self, req: LinkChat) -> bool:
        item = self._find_user(req.username)
        if item is None:
            return False
        payload = item.doc.get()
        if payload is None:
            return False
        user = UserRecord.from_disk_doc(payload)
        if req.chat_id not in user.chats:
            user.chats.append(req.chat_id)
            self._require_db().update(USERS_COLLECTION, item.id, {"chats": user.chats})
        return True

    def _insert_chat(self, req: InsertChat) -> str:
        return self._require_db().insert(CHATS_COLLECTION, req.chat.to_disk_doc())

    def _get_chat(self, req: GetChat) -> ChatRecord | None:
        payload = self._require_db().get(CHATS_COLLECTION, req.chat_id)
        return ChatRecord.from_disk_doc(payload) if payload is not None else None

    def _append_message(self, req: AppendMessage) -> bool:
        chat = self._get_chat(GetChat(req.chat_id))
        if chat is None:
            return False
        updated = chat.with_message(req.message)
        partial = {"messages": [m.model_dump(mode="json") for m in updated.messages]}
        return self._require_db().update(CHATS_COLLECTION, req.chat_id, partial)
