"""
MongoDB implementation of WorkflowStore.

Conditional transitions use find_one_and_update with the expected status in the filter.
transaction() runs the block inside a client session transaction (requires a replica set or
Atlas cluster); every operation issued inside the block joins that session.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pymongo import MongoClient, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from estateclaims.db import collection_names, get_database
from estateclaims.errors import ConcurrentModificationError, ConflictError
from estateclaims.store.base import Filter, Sort, WorkflowStore

logger = logging.getLogger(__name__)


def count_by_pipeline(field: str) -> list[dict[str, Any]]:
    """Aggregation pipeline returning one {_id: value, count: n} document per distinct field value."""
    return [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]


class MongoWorkflowStore(WorkflowStore):
    def __init__(self, client: MongoClient, config: dict[str, Any], use_transactions: bool = True):
        self._client = client
        self._db = get_database(client, config)
        self._names = collection_names(config)
        self._use_transactions = use_transactions
        self._local = threading.local()

    def _coll(self, collection: str) -> Collection:
        return self._db[self._names[collection]]

    def _session(self) -> ClientSession | None:
        return getattr(self._local, "session", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._session() is not None or not self._use_transactions:
            # Nested unit joins the outer transaction
            yield
            return
        try:
            with self._client.start_session() as session:
                # start_transaction commits on clean exit and aborts if the block raises
                with session.start_transaction():
                    self._local.session = session
                    try:
                        yield
                    finally:
                        self._local.session = None
        except PyMongoError as e:
            # Write conflicts with a concurrent transaction surface here, not as a missed filter
            if e.has_error_label("TransientTransactionError"):
                logger.warning("Transaction aborted by a concurrent write: %s", e)
                raise ConcurrentModificationError(
                    "Record was modified concurrently; retry the operation", {"reason": str(e)}
                ) from e
            raise

    def insert(self, collection: str, doc: dict[str, Any]) -> None:
        try:
            self._coll(collection).insert_one(doc, session=self._session())
        except DuplicateKeyError as e:
            raise ConflictError(
                f"Duplicate key in {collection}", {"id": doc.get("_id"), "key": e.details}
            ) from e

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        return self._coll(collection).find_one({"_id": record_id}, session=self._session())

    def find(
        self,
        collection: str,
        filt: Filter | None = None,
        sort: Sort | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        cursor = self._coll(collection).find(filt or {}, session=self._session())
        if sort:
            cursor = cursor.sort(sort)
        if limit is not None:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, collection: str, filt: Filter | None = None) -> int:
        return self._coll(collection).count_documents(filt or {}, session=self._session())

    def compare_and_set(
        self,
        collection: str,
        record_id: str,
        expected: dict[str, Any],
        updates: dict[str, Any],
    ) -> dict[str, Any] | None:
        return self._coll(collection).find_one_and_update(
            {"_id": record_id, **expected},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
            session=self._session(),
        )

    def count_by(self, collection: str, field: str) -> dict[str, int]:
        rows = self._coll(collection).aggregate(count_by_pipeline(field), session=self._session())
        return {row["_id"]: row["count"] for row in rows}
