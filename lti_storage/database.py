# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Abstract database interface consumed by the LTI tool host."""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from .query import QueryValue

EqualityQuery = Mapping[str, QueryValue]


class Database(ABC):
    """Persistence contract of the LTI tool host.

    ``secret`` enables payload encryption when truthy. ``query`` is a flat
    mapping of field name to required value.
    """

    @abstractmethod
    async def setup(self) -> bool:
        """Prepare the database for use."""
        pass

    @abstractmethod
    async def close(self) -> bool:
        """Release the database."""
        pass

    @abstractmethod
    async def get(
        self, secret: str | None, collection: str, query: EqualityQuery | None = None
    ) -> list[dict[str, Any]] | bool:
        """Return the live documents matching ``query``, or False if there are none.

        Raises:
            MissingCollectionError: If collection is empty
        """
        pass

    @abstractmethod
    async def insert(
        self,
        secret: str | None,
        collection: str,
        item: Mapping[str, Any] | None,
        index: Mapping[str, QueryValue] | None = None,
    ) -> bool:
        """Store a new document.

        Raises:
            MissingParamsError: If collection or item is missing, or if a
                                secret is given without index fields
        """
        pass

    @abstractmethod
    async def replace(
        self,
        secret: str | None,
        collection: str,
        query: EqualityQuery | None,
        item: Mapping[str, Any] | None,
        index: Mapping[str, QueryValue] | None = None,
    ) -> bool:
        """Overwrite the single document matching ``query``, or create it.

        Raises:
            MissingParamsError: As for insert
            MultipleDocumentsFoundError: If more than one document matches
            TransactionError: If the store aborts the transaction
        """
        pass

    @abstractmethod
    async def modify(
        self,
        secret: str | None,
        collection: str,
        query: EqualityQuery | None,
        modification: Mapping[str, Any] | None,
    ) -> bool:
        """Patch fields of the single document matching ``query``.

        Raises:
            MissingParamsError: If collection, query or modification is missing
            DocumentNotFoundError: If no document matches
            MultipleDocumentsFoundError: If more than one document matches
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, query: EqualityQuery | None) -> bool:
        """Delete every document matching ``query``.

        Raises:
            MissingParamsError: If collection or query is missing
        """
        pass
