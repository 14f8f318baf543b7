from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Iterable, NamedTuple

from json_store import read_json, write_json

from .errors import MalformedError, StoreError, StoreIOError, UnlockedError
from .index import CollectionIndex, IndexFile
from .locks import PidLockFile
from .ordering import index_key, is_comparable
from .query import Condition, Where

logger = logging.getLogger(__name__)

DOC_SUFFIX = ".json"
INDEX_FILE = "index.json"
LOCK_FILE = "lock"
VERSION_FILE = "version"
STORE_VERSION = "1"


def _top_level_keys(payload: Any) -> list[str]:
    return list(payload.keys()) if isinstance(payload, dict) else []


class IdDocument(NamedTuple):
    id: str
    doc: Document


class Database:
    """
    Root of the document store.

    A tree of collections (directories) and documents (<id>.json files) under
    `base`, plus base/index.json, base/version and the base/lock PID file.
    Reads work without the lock; every write requires it.
    """

    def __init__(self, base: Path):
        self._base = Path(base)
        self._pid = os.getpid()
        self._index = IndexFile(self._base / INDEX_FILE)
        self._lock_file = PidLockFile(self._base / LOCK_FILE)
        self._open()
        self._locked = self._lock_file.held_by(self._pid)

    def _open(self) -> None:
        try:
            if not self._base.is_dir():
                self._base.mkdir(parents=True, exist_ok=True)
                logger.info("DB: created database at %s", self._base)
            version = self._base / VERSION_FILE
            if not version.exists():
                version.write_text(STORE_VERSION, encoding="utf-8")
        except OSError as e:
            raise StoreIOError(f"failed to open database at {self._base}: {e}") from e
        if not self._index.path.exists():
            self._index.initialize()

    @property
    def base(self) -> Path:
        return self._base

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def index(self) -> IndexFile:
        return self._index

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        if self._locked and self._lock_file.held_by(self._pid):
            return
        self._lock_file.acquire(self._pid)
        self._locked = True

    def unlock(self) -> None:
        if self._locked:
            self._lock_file.release()
            self._locked = False

    def close(self) -> None:
        self.unlock()

    def require_lock(self) -> None:
        if not self._locked:
            raise UnlockedError()

    def __enter__(self) -> Database:
        self.lock()
        return self

    def __exit__(self, *exc: object) -> None:
        self.unlock()

    def collection(self, name: str) -> Collection:
        return Collection(self, self._base / name)

    # Verbs used by the request dispatcher.

    def insert(self, collection: str, payload: Any) -> str:
        return self.collection(collection).add(payload)

    def get(self, collection: str, doc_id: str) -> Any | None:
        return self.collection(collection).doc(doc_id).get()

    def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> bool:
        return self.collection(collection).doc(doc_id).update(partial)

    def delete(self, collection: str, doc_id: str) -> bool:
        return self.collection(collection).doc(doc_id).delete()

    def where(self, collection: str, key: str, cond: Condition, value: Any) -> Where:
        return self.collection(collection).where(key, cond, value)

    def list(self, collection: str) -> list[IdDocument]:
        return self.collection(collection).list()


class Collection:
    """A directory of sibling <id>.json documents. Created lazily on first write."""

    def __init__(self, database: Database, path: Path):
        self._db = database
        self._path = path

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def path(self) -> Path:
        return self._path

    @property
    def database(self) -> Database:
        return self._db

    @property
    def exists(self) -> bool:
        return self._path.is_dir()

    @property
    def relative_path(self) -> str:
        return self._path.relative_to(self._db.base).as_posix()

    def doc(self, name: str) -> Document:
        return Document(self, name)

    def id_document(self, doc_id: str) -> IdDocument:
        return IdDocument(doc_id, self.doc(doc_id))

    def add(self, payload: Any) -> str:
        self._db.require_lock()
        self.mkdir()
        doc_id = str(uuid.uuid4())
        self.doc(doc_id).set(payload)
        return doc_id

    def list(self) -> list[IdDocument]:
        if not self.exists:
            return []
        try:
            files = sorted(p for p in self._path.glob(f"*{DOC_SUFFIX}") if p.is_file())
        except OSError as e:
            raise StoreIOError(f"failed to list {self._path}: {e}") from e
        return [self.id_document(p.stem) for p in files]

    def where(self, key: str, cond: Condition, value: Any) -> Where:
        return Where.search(self, key, cond, value)

    def mkdir(self) -> None:
        if self.exists:
            return
        self._db.require_lock()
        try:
            self._path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"failed to create collection {self._path}: {e}") from e

    def reindex(self, keys: Iterable[str]) -> None:
        """
        Rebuild the index sequence of every key in `keys` from a full scan of the collection.

        A key left without any comparable value is dropped from the index.
        """
        self._db.require_lock()
        keys = list(keys)
        if not keys:
            return
        rel_path = self.relative_path
        mapping: CollectionIndex = self._db.index.collection_map(rel_path)
        docs = self._load_objects()

        for key in keys:
            matching = [(doc_id, obj[key]) for doc_id, obj in docs if key in obj and is_comparable(obj[key])]
            if not matching:
                mapping.pop(key, None)
                continue
            matching.sort(key=lambda pair: index_key(pair[1]))
            mapping[key] = [[value, doc_id] for doc_id, value in matching]

        self._db.index.store_collection_map(rel_path, mapping)
        logger.debug("INDEX: rebuilt %s keys=%s over %d documents", rel_path, keys, len(docs))

    def indexed_keys_of(self, doc_id: str) -> list[str]:
        mapping = self._db.index.collection_map(self.relative_path)
        return [key for key, seq in mapping.items() if any(isinstance(entry, list) and entry[-1:] == [doc_id] for entry in seq)]

    def _load_objects(self) -> list[tuple[str, dict[str, Any]]]:
        loaded: list[tuple[str, dict[str, Any]]] = []
        for item in self.list():
            try:
                payload = item.doc.get()
            except StoreError as e:
                logger.warning("INDEX: skipping unreadable document %s/%s: %s", self.relative_path, item.id, e)
                continue
            if isinstance(payload, dict):
                loaded.append((item.id, payload))
        return loaded


class Document:
    """
    Handle on <collection>/<name>.json. Building one does not touch the file.

    `exists` is the file presence at the last observation: set/delete update it,
    get refreshes it.
    """

    def __init__(self, collection: Collection, name: str):
        self._collection = collection
        self._name = name
        self._path = collection.path / f"{name}{DOC_SUFFIX}"
        self.exists = self._path.is_file()

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> Path:
        return self._path

    def set(self, payload: Any, *, reindex: bool = True) -> None:
        self._collection.database.require_lock()
        self._collection.mkdir()
        try:
            write_json(self._path, payload)
        except OSError as e:
            raise StoreIOError(f"failed to write {self._path}: {e}") from e
        except (TypeError, ValueError) as e:
            raise MalformedError(f"payload for {self._path} is not JSON serializable: {e}") from e
        self.exists = True
        if reindex:
            self._collection.reindex(_top_level_keys(payload))

    def get(self) -> Any | None:
        try:
            payload = read_json(self._path)
        except json.JSONDecodeError as e:
            raise MalformedError(f"document {self._path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StoreIOError(f"failed to read {self._path}: {e}") from e
        self.exists = payload is not None or self._path.is_file()
        return payload

    def update(self, partial: dict[str, Any]) -> bool:
        """
        Shallow-merge `partial` into the stored object; nested values are replaced whole.

        Returns False (and writes nothing) when the document does not exist.
        """
        self._collection.database.require_lock()
        if not isinstance(partial, dict):
            raise MalformedError("update payload must be a JSON object")
        current = self.get()
        if current is None:
            return False
        if not isinstance(current, dict):
            raise MalformedError(f"document {self._path} is not a JSON object; cannot merge")
        merged = {**current, **partial}
        self.set(merged, reindex=False)
        self._collection.reindex(partial.keys())
        return True

    def delete(self) -> bool:
        self._collection.database.require_lock()
        try:
            keys = _top_level_keys(self.get())
        except MalformedError as e:
            # the pre-image is unreadable: fall back to the fields the index lists for this id
            logger.warning("DB: deleting unreadable document %s: %s", self._path, e)
            self.exists = True
            keys = self._collection.indexed_keys_of(self._name)
        if not self.exists:
            return False
        try:
            self._path.unlink()
        except OSError as e:
            raise StoreIOError(f"failed to delete {self._path}: {e}") from e
        self.exists = False
        self._collection.reindex(keys)
        return True

    def collection(self, name: str) -> Collection:
        """Nested collection living in the directory named after this document."""
        return Collection(self._collection.database, self._path.with_suffix("") / name)
