from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from json_store import read_json, replace_json

from .errors import MalformedError, StoreIOError
from .ordering import is_comparable

IndexEntry = list[Any]  # [value, doc-id]
CollectionIndex = dict[str, list[IndexEntry]]


class IndexFile:
    """
    The single base/index.json document:

      { "<collection-relative-path>": { "<field>": [[<value>, "<doc-id>"], ...] } }

    Every field sequence holds bools, then numbers, then strings, each run
    ascending under persistence.ordering.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        self._write({})

    def load(self) -> dict[str, Any]:
        try:
            raw = read_json(self._path)
        except json.JSONDecodeError as e:
            raise MalformedError(f"index file {self._path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StoreIOError(f"failed to read {self._path}: {e}") from e
        if raw is None:
            raise StoreIOError(f"index file {self._path} is missing")
        if not isinstance(raw, dict):
            raise MalformedError(f"index file {self._path} must hold a JSON object")
        return raw

    def collection_map(self, rel_path: str) -> CollectionIndex:
        mapping = self.load().get(rel_path)
        return dict(mapping) if isinstance(mapping, dict) else {}

    def entries(self, rel_path: str, key: str) -> list[IndexEntry] | None:
        """The sorted sequence for one field, or None if the field is not indexed."""
        seq = self.collection_map(rel_path).get(key)
        if seq is None:
            return None
        if not isinstance(seq, list) or not all(_is_entry(e) for e in seq):
            raise MalformedError(f"index entry {rel_path!r}/{key!r} is not a list of [value, id] pairs")
        return seq

    def store_collection_map(self, rel_path: str, mapping: CollectionIndex) -> None:
        index = self.load()
        index[rel_path] = mapping
        self._write(index)

    def _write(self, index: dict[str, Any]) -> None:
        try:
            replace_json(self._path, index)
        except OSError as e:
            raise StoreIOError(f"failed to write {self._path}: {e}") from e


def _is_entry(entry: Any) -> bool:
    return isinstance(entry, list) and len(entry) == 2 and is_comparable(entry[0]) and isinstance(entry[1], str)
