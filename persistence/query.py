from __future__ import annotations

import bisect
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from .index import IndexEntry
from .ordering import kind_rank, value_key

if TYPE_CHECKING:
    from .disk_store import Collection, IdDocument


class Condition(str, Enum):
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS = "<"
    LESS_OR_EQUAL = "<="
    GREATER = ">"
    GREATER_OR_EQUAL = ">="


_INCLUSIVE = frozenset({Condition.EQUAL, Condition.LESS_OR_EQUAL, Condition.GREATER_OR_EQUAL})


def _entry_key(entry: IndexEntry) -> Any:
    return value_key(entry[0])


def _entry_rank(entry: IndexEntry) -> int | None:
    return kind_rank(entry[0])


def _kind_run(seq: Sequence[IndexEntry], rank: int) -> tuple[int, int]:
    """Bounds of the contiguous run of entries whose value has kind `rank`."""
    lo = bisect.bisect_left(seq, rank, key=_entry_rank)
    hi = bisect.bisect_right(seq, rank, lo, key=_entry_rank)
    return lo, hi


def select(seq: Sequence[IndexEntry], cond: Condition, value: Any) -> list[IndexEntry]:
    """
    Filter an index sequence down to the entries satisfying `entry cond value`.

    The sequence holds one ascending run per kind. Only the run of the query
    value's kind is searched; entries of any other kind compare equal to the
    value, so they satisfy ==, <= and >= and never <, > or !=.
    """
    cond = Condition(cond)
    rank = kind_rank(value)
    if rank is None:
        # a non-scalar query value compares equal to everything
        return list(seq) if cond in _INCLUSIVE else []

    run_lo, run_hi = _kind_run(seq, rank)
    needle = value_key(value)
    eq_lo = bisect.bisect_left(seq, needle, run_lo, run_hi, key=_entry_key)
    eq_hi = bisect.bisect_right(seq, needle, eq_lo, run_hi, key=_entry_key)
    before, after = list(seq[:run_lo]), list(seq[run_hi:])

    if cond is Condition.LESS:
        return list(seq[run_lo:eq_lo])
    if cond is Condition.LESS_OR_EQUAL:
        return before + list(seq[run_lo:eq_hi]) + after
    if cond is Condition.GREATER:
        return list(seq[eq_hi:run_hi])
    if cond is Condition.GREATER_OR_EQUAL:
        return before + list(seq[eq_lo:run_hi]) + after
    if cond is Condition.EQUAL:
        return before + list(seq[eq_lo:eq_hi]) + after
    if cond is Condition.NOT_EQUAL:
        return list(seq[run_lo:eq_lo]) + list(seq[eq_hi:run_hi])
    raise ValueError(f"unsupported condition: {cond!r}")


class Where:
    """
    A query over one collection: the collection plus the ids matched so far.

    Results are lazy handles; documents are only read when the caller asks.
    """

    def __init__(self, collection: Collection, result: list[IdDocument]):
        self._collection = collection
        self._result = result

    @classmethod
    def search(cls, collection: Collection, key: str, cond: Condition, value: Any) -> Where:
        return cls(collection, _search(collection, key, Condition(cond), value))

    @property
    def collection(self) -> Collection:
        return self._collection

    def and_(self, key: str, cond: Condition, value: Any) -> Where:
        """Refine with another clause; returns a new handle holding the intersection."""
        fresh = _search(self._collection, key, Condition(cond), value)
        keep = {d.id for d in self._result}
        return Where(self._collection, [d for d in fresh if d.id in keep])

    where = and_

    def get(self) -> list[IdDocument]:
        return list(self._result)

    def ids(self) -> list[str]:
        return [d.id for d in self._result]

    def __iter__(self) -> Iterator[IdDocument]:
        return iter(list(self._result))

    def __len__(self) -> int:
        return len(self._result)


def _search(collection: Collection, key: str, cond: Condition, value: Any) -> list[IdDocument]:
    if not collection.exists:
        return []
    seq = collection.database.index.entries(collection.relative_path, key)
    if not seq:
        return []
    return [collection.id_document(doc_id) for _, doc_id in select(seq, cond, value)]
