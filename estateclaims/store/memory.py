"""
In-process implementation of WorkflowStore.
Used by tests, the demo script and single-process deployments without MongoDB.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from estateclaims.errors import ConflictError
from estateclaims.store.base import COLLECTIONS, UNIQUE_KEYS, Filter, Sort, WorkflowStore

logger = logging.getLogger(__name__)

_OPERATORS = {
    "$gt": lambda value, arg: value is not None and value > arg,
    "$gte": lambda value, arg: value is not None and value >= arg,
    "$lt": lambda value, arg: value is not None and value < arg,
    "$lte": lambda value, arg: value is not None and value <= arg,
    "$in": lambda value, arg: value in arg,
}


def _matches(doc: dict[str, Any], filt: Filter | None) -> bool:
    """Return True if doc satisfies the equality / operator filter."""
    if not filt:
        return True
    for key, cond in filt.items():
        value = doc.get(key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                check = _OPERATORS.get(op)
                if check is None:
                    raise ValueError(f"Unsupported filter operator: {op}")
                if not check(value, arg):
                    return False
        elif value != cond:
            return False
    return True


def _sorted(docs: list[dict[str, Any]], sort: Sort | None) -> list[dict[str, Any]]:
    if not sort:
        return docs
    out = list(docs)
    # Stable sorts applied from the least significant key
    for field, direction in reversed(sort):
        out.sort(key=lambda d: (d.get(field) is None, d.get(field)), reverse=direction < 0)
    return out


class InMemoryWorkflowStore(WorkflowStore):
    """
    Collections held as dicts of deep-copied documents.
    A re-entrant lock serializes transactions; the outermost transaction snapshots all
    collections and restores the snapshot if the block raises.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in COLLECTIONS}
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._data) if outermost else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self._data = snapshot
                    logger.debug("Rolled back in-memory transaction")
                raise
            finally:
                self._depth -= 1

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        if collection not in self._data:
            raise KeyError(f"Unknown collection: {collection}")
        return self._data[collection]

    def insert(self, collection: str, doc: dict[str, Any]) -> None:
        with self._lock:
            coll = self._collection(collection)
            record_id = doc["_id"]
            if record_id in coll:
                raise ConflictError(f"Duplicate _id in {collection}", {"id": record_id})
            for key_fields in UNIQUE_KEYS.get(collection, []):
                key = tuple(doc.get(f) for f in key_fields)
                for existing in coll.values():
                    if tuple(existing.get(f) for f in key_fields) == key:
                        raise ConflictError(
                            f"Duplicate {'/'.join(key_fields)} in {collection}",
                            dict(zip(key_fields, key)),
                        )
            coll[record_id] = copy.deepcopy(doc)

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._collection(collection).get(record_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(
        self,
        collection: str,
        filt: Filter | None = None,
        sort: Sort | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collection(collection).values() if _matches(d, filt)]
        docs = _sorted(docs, sort)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def count(self, collection: str, filt: Filter | None = None) -> int:
        with self._lock:
            return sum(1 for d in self._collection(collection).values() if _matches(d, filt))

    def compare_and_set(
        self,
        collection: str,
        record_id: str,
        expected: dict[str, Any],
        updates: dict[str, Any],
    ) -> dict[str, Any] | None:
        with self._lock:
            doc = self._collection(collection).get(record_id)
            if doc is None or not _matches(doc, expected):
                return None
            doc.update(copy.deepcopy(updates))
            return copy.deepcopy(doc)

    def count_by(self, collection: str, field: str) -> dict[str, int]:
        with self._lock:
            return dict(Counter(d.get(field) for d in self._collection(collection).values()))
