# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""In-memory document store for testing and local development."""

import copy
import logging
import uuid
from collections import defaultdict
from typing import Any, Awaitable, Callable, TypeVar

from .document_store import (
    DocumentSnapshot,
    DocumentStore,
    TransactionAbortedError,
    Transaction,
)
from .exceptions import DocumentNotFoundError
from .query import Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemoryTransaction(Transaction):
    """Optimistic transaction over an InMemoryDocumentStore.

    Reads go straight to the store and remember the revision of each
    collection they touched; writes are buffered until commit.
    """

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.read_revisions: dict[str, int] = {}
        self.writes: list[tuple[str, str, dict[str, Any]]] = []

    async def get(self, query: Query) -> list[DocumentSnapshot]:
        self.read_revisions.setdefault(query.collection, self._store.revisions[query.collection])
        return self._store._match(query)

    async def set(self, collection: str, doc_id: str | None, data: dict[str, Any]) -> None:
        self.writes.append((collection, doc_id or str(uuid.uuid4()), copy.deepcopy(data)))


class InMemoryDocumentStore(DocumentStore):
    """In-memory document store implementation for testing."""

    @classmethod
    def from_config(cls, driver_config: Any = None) -> "InMemoryDocumentStore":
        """Create an InMemoryDocumentStore; the driver config carries no settings."""
        return cls()

    def __init__(self):
        """Initialize in-memory document store."""
        self.collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        # Bumped on every write; used to detect conflicting transactions
        self.revisions: dict[str, int] = defaultdict(int)
        self.connected = False

    async def connect(self) -> None:
        """Pretend to connect.

        Note: Always succeeds for in-memory store
        """
        self.connected = True
        logger.debug("InMemoryDocumentStore: connected")

    async def disconnect(self) -> None:
        """Pretend to disconnect."""
        self.connected = False
        logger.debug("InMemoryDocumentStore: disconnected")

    def _match(self, query: Query) -> list[DocumentSnapshot]:
        return [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(doc))
            for doc_id, doc in self.collections[query.collection].items()
            if query.matches(doc)
        ]

    def _touch(self, collection: str) -> None:
        self.revisions[collection] += 1

    async def query_documents(self, query: Query) -> list[DocumentSnapshot]:
        """Return copies of all documents matching the query."""
        results = self._match(query)
        logger.debug(
            f"InMemoryDocumentStore: query on {query.collection} with {query.as_filter()} "
            f"returned {len(results)} documents"
        )
        return results

    async def insert_document(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a copy of ``data`` under a new UUID."""
        doc_id = str(uuid.uuid4())
        self.collections[collection][doc_id] = copy.deepcopy(data)
        self._touch(collection)
        logger.debug(f"InMemoryDocumentStore: inserted document {doc_id} into {collection}")
        return doc_id

    async def update_document(self, collection: str, doc_id: str, patch: dict[str, Any]) -> None:
        """Apply a field patch to an existing document.

        Raises:
            DocumentNotFoundError: If document does not exist
        """
        if doc_id not in self.collections[collection]:
            logger.debug(f"InMemoryDocumentStore: document {doc_id} not found in {collection}")
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {collection}")

        self.collections[collection][doc_id].update(copy.deepcopy(patch))
        self._touch(collection)
        logger.debug(f"InMemoryDocumentStore: updated document {doc_id} in {collection}")

    async def delete_documents(self, collection: str, doc_ids: list[str]) -> None:
        """Delete the given documents; unknown IDs are ignored."""
        deleted = 0
        for doc_id in doc_ids:
            if self.collections[collection].pop(doc_id, None) is not None:
                deleted += 1
        if deleted:
            self._touch(collection)
        logger.debug(f"InMemoryDocumentStore: deleted {deleted} documents from {collection}")

    async def run_transaction(self, callback: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``callback`` and commit its buffered writes.

        Raises:
            TransactionAbortedError: If a collection read by the transaction
                                     was written to before commit
        """
        transaction = InMemoryTransaction(self)
        result = await callback(transaction)

        # Commit performs no awaits, so it cannot interleave with other writers
        for collection, revision in transaction.read_revisions.items():
            if self.revisions[collection] != revision:
                logger.debug(f"InMemoryDocumentStore: write conflict on {collection}")
                raise TransactionAbortedError(
                    f"Transaction aborted: {collection} was modified concurrently"
                )

        for collection, doc_id, data in transaction.writes:
            self.collections[collection][doc_id] = data
            self._touch(collection)

        logger.debug(f"InMemoryDocumentStore: committed {len(transaction.writes)} writes")
        return result

    def clear_collection(self, collection: str) -> None:
        """Clear all documents in a collection (useful for testing).

        Args:
            collection: Name of the collection
        """
        self.collections[collection].clear()
        self._touch(collection)
        logger.debug(f"InMemoryDocumentStore: cleared collection {collection}")

    def clear_all(self) -> None:
        """Clear all collections (useful for testing)."""
        for collection in list(self.collections):
            self._touch(collection)
        self.collections.clear()
        logger.debug("InMemoryDocumentStore: cleared all collections")
