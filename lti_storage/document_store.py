# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Abstract document store interface for document database drivers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from .query import Query

T = TypeVar("T")


class DocumentStoreError(Exception):
    """Base exception for document store errors."""
    pass


class DocumentStoreNotConnectedError(DocumentStoreError):
    """Exception raised when attempting operations on a disconnected store."""
    pass


class DocumentStoreConnectionError(DocumentStoreError):
    """Exception raised when connection to the document store fails."""
    pass


class TransactionAbortedError(DocumentStoreError):
    """Exception raised when the store aborts a transaction (e.g. write conflict)."""
    pass


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document read from the store.

    ``data`` holds the stored fields only; the store's own identifier field
    is exposed as ``id`` and never appears in ``data``.
    """

    id: str
    data: dict[str, Any] = field(default_factory=dict)


class Transaction(ABC):
    """Read-then-write unit of work handed to ``run_transaction`` callbacks."""

    @abstractmethod
    async def get(self, query: Query) -> list[DocumentSnapshot]:
        """Read all documents matching the query inside the transaction."""
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str | None, data: dict[str, Any]) -> None:
        """Write a full document inside the transaction.

        Args:
            collection: Physical collection path
            doc_id: Identifier of the document to overwrite, or None to create
                    a new document with a store-generated identifier
            data: Complete document body
        """
        pass


class DocumentStore(ABC):
    """Abstract base class for document storage backends."""

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the document store.

        Raises:
            DocumentStoreConnectionError: If connection fails
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the document store."""
        pass

    @abstractmethod
    async def query_documents(self, query: Query) -> list[DocumentSnapshot]:
        """Return every document matching an equality query.

        Args:
            query: Query naming the physical collection and its constraints

        Returns:
            List of matching documents (empty list if no matches)

        Raises:
            DocumentStoreError: If the query fails
        """
        pass

    @abstractmethod
    async def insert_document(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document with a store-generated identifier.

        Args:
            collection: Physical collection path
            data: Document data as dictionary

        Returns:
            Document ID as string

        Raises:
            DocumentStoreError: If insertion fails
        """
        pass

    @abstractmethod
    async def update_document(self, collection: str, doc_id: str, patch: dict[str, Any]) -> None:
        """Update selected fields of a document, leaving the others intact.

        Args:
            collection: Physical collection path
            doc_id: Document ID
            patch: Fields to set

        Raises:
            DocumentNotFoundError: If document does not exist
            DocumentStoreError: If update operation fails
        """
        pass

    @abstractmethod
    async def delete_documents(self, collection: str, doc_ids: list[str]) -> None:
        """Delete several documents as one atomic batch.

        Identifiers that no longer exist are ignored.

        Args:
            collection: Physical collection path
            doc_ids: Document IDs to delete

        Raises:
            DocumentStoreError: If the batch fails; no document is deleted then
        """
        pass

    @abstractmethod
    async def run_transaction(self, callback: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``callback`` inside a snapshot-isolated transaction.

        The transaction commits when the callback returns and is rolled back
        when it raises, in which case the callback's exception propagates.
        The store never retries the callback.

        Args:
            callback: Coroutine function receiving the Transaction

        Returns:
            The callback's return value

        Raises:
            TransactionAbortedError: If the store aborts the transaction
        """
        pass
