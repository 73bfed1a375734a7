# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""MongoDB document store implementation."""

import copy
import logging
from typing import Any, Awaitable, Callable, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from .config import DriverConfig_DocumentStore_Mongodb
from .document_store import (
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreConnectionError,
    DocumentStoreError,
    DocumentStoreNotConnectedError,
    Transaction,
    TransactionAbortedError,
)
from .exceptions import DocumentNotFoundError
from .query import Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_object_id(doc_id: str) -> Any:
    # Fall back to the raw string for IDs that are not ObjectIds
    try:
        return ObjectId(doc_id)
    except (TypeError, ValueError, InvalidId):
        return doc_id


def _to_snapshot(doc: dict[str, Any]) -> DocumentSnapshot:
    doc_id = str(doc.pop("_id"))
    return DocumentSnapshot(id=doc_id, data=doc)


class MongoTransaction(Transaction):
    """Transaction bound to a MongoDB client session."""

    def __init__(self, database: Any, session: Any):
        self._database = database
        self.session = session

    async def get(self, query: Query) -> list[DocumentSnapshot]:
        cursor = self._database[query.collection].find(query.as_filter(), session=self.session)
        return [_to_snapshot(doc) async for doc in cursor]

    async def set(self, collection: str, doc_id: str | None, data: dict[str, Any]) -> None:
        coll = self._database[collection]
        if doc_id is None:
            await coll.insert_one(copy.deepcopy(data), session=self.session)
        else:
            await coll.replace_one({"_id": _to_object_id(doc_id)}, data, upsert=True, session=self.session)


class MongoDocumentStore(DocumentStore):
    """MongoDB document store implementation.

    Transactions require the server to run as a replica set (a single-node
    replica set is enough).
    """

    @classmethod
    def from_config(cls, driver_config: DriverConfig_DocumentStore_Mongodb) -> "MongoDocumentStore":
        """Create a MongoDocumentStore from configuration.

        Args:
            driver_config: MongoDB driver configuration

        Returns:
            Configured MongoDocumentStore instance
        """
        kwargs: dict[str, Any] = {}
        if driver_config.replica_set:
            kwargs["replicaSet"] = driver_config.replica_set

        return cls(
            host=driver_config.host,
            port=driver_config.port,
            username=driver_config.username,
            password=driver_config.password,
            database=driver_config.database,
            connection_string=driver_config.connection_string,
            **kwargs,
        )

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
        connection_string: str | None = None,
        **kwargs
    ):
        """Initialize MongoDB document store.

        Args:
            host: MongoDB host (required unless connection_string is given)
            port: MongoDB port (required unless connection_string is given)
            username: MongoDB username (optional)
            password: MongoDB password (optional)
            database: Database name (required)
            connection_string: Full MongoDB URI, used instead of host and port
            **kwargs: Additional MongoDB client options

        Raises:
            ValueError: If required parameters are not provided
        """
        if not connection_string:
            if not host:
                raise ValueError(
                    "MongoDB host is required. "
                    "Provide the MongoDB server hostname or a connection string."
                )
            if port is None:
                raise ValueError(
                    "MongoDB port is required. "
                    "Provide the MongoDB server port number or a connection string."
                )
        if not database:
            raise ValueError(
                "MongoDB database is required. "
                "Provide the database name to use."
            )

        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.database_name = database
        self.connection_string = connection_string
        self.client_options = kwargs
        self.client: Any = None
        self.database: Any = None

    def _connection_params(self) -> dict[str, Any]:
        if self.connection_string:
            params: dict[str, Any] = {"host": self.connection_string}
        else:
            params = {"host": self.host, "port": self.port}

        if self.username and self.password:
            params["username"] = self.username
            params["password"] = self.password
            if "authSource" not in self.client_options:
                params["authSource"] = "admin"

        # Stored dates come back as aware UTC datetimes
        params["tz_aware"] = True
        params.update(self.client_options)
        return params

    def _require_database(self) -> Any:
        if self.database is None:
            raise DocumentStoreNotConnectedError("Not connected to MongoDB")
        return self.database

    async def connect(self) -> None:
        """Connect to MongoDB and verify the server answers a ping.

        Raises:
            DocumentStoreConnectionError: If connection fails
        """
        try:
            client = AsyncMongoClient(**self._connection_params())
        except PyMongoError as e:
            logger.error("MongoDocumentStore: invalid client configuration - %s", e)
            raise DocumentStoreConnectionError(f"Invalid MongoDB configuration: {e}") from e

        try:
            await client.admin.command("ping")
        except ConnectionFailure as e:
            await client.close()
            logger.error("MongoDocumentStore: connection failed - %s", e, exc_info=True)
            raise DocumentStoreConnectionError(
                f"Failed to connect to MongoDB at {self.host or 'connection string'}:{self.port}"
            ) from e
        except PyMongoError as e:
            await client.close()
            logger.error("MongoDocumentStore: unexpected error during connect - %s", e, exc_info=True)
            raise DocumentStoreConnectionError(f"Unexpected error connecting to MongoDB: {str(e)}") from e

        self.client = client
        self.database = client[self.database_name]
        logger.info("MongoDocumentStore: connected to database %s", self.database_name)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client is not None:
            await self.client.close()
            self.client = None
            self.database = None
            logger.info("MongoDocumentStore: disconnected")

    async def query_documents(self, query: Query) -> list[DocumentSnapshot]:
        """Return every document matching an equality query.

        Raises:
            DocumentStoreNotConnectedError: If not connected to MongoDB
            DocumentStoreError: If query operation fails
        """
        database = self._require_database()
        filter_dict = query.as_filter()

        try:
            cursor = database[query.collection].find(filter_dict)
            results = [_to_snapshot(doc) async for doc in cursor]
        except PyMongoError as e:
            logger.error(f"MongoDocumentStore: query_documents failed - {e}", exc_info=True)
            raise DocumentStoreError(f"Failed to query documents from {query.collection}") from e

        logger.debug(
            f"MongoDocumentStore: query on {query.collection} with {filter_dict} "
            f"returned {len(results)} documents"
        )
        return results

    async def insert_document(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document and return its generated ObjectId as a string.

        Raises:
            DocumentStoreNotConnectedError: If not connected to MongoDB
            DocumentStoreError: If insertion fails
        """
        database = self._require_database()

        try:
            # insert_one adds _id to the dict it is given
            result = await database[collection].insert_one(copy.deepcopy(data))
        except PyMongoError as e:
            logger.error(f"MongoDocumentStore: insert failed - {e}", exc_info=True)
            raise DocumentStoreError(f"Failed to insert document into {collection}") from e

        doc_id = str(result.inserted_id)
        logger.debug(f"MongoDocumentStore: inserted document {doc_id} into {collection}")
        return doc_id

    async def update_document(self, collection: str, doc_id: str, patch: dict[str, Any]) -> None:
        """Update a document with the provided patch.

        Raises:
            DocumentStoreNotConnectedError: If not connected to MongoDB
            DocumentNotFoundError: If document does not exist
            DocumentStoreError: If update operation fails
        """
        database = self._require_database()

        try:
            result = await database[collection].update_one({"_id": _to_object_id(doc_id)}, {"$set": patch})
        except PyMongoError as e:
            logger.error(f"MongoDocumentStore: update_document failed - {e}", exc_info=True)
            raise DocumentStoreError(f"Failed to update document {doc_id} in {collection}") from e

        if result.matched_count == 0:
            logger.debug(f"MongoDocumentStore: document {doc_id} not found in {collection}")
            raise DocumentNotFoundError(f"Document {doc_id} not found in collection {collection}")

        logger.debug(f"MongoDocumentStore: updated document {doc_id} in {collection}")

    async def delete_documents(self, collection: str, doc_ids: list[str]) -> None:
        """Delete documents by ID inside a single transaction.

        Raises:
            DocumentStoreNotConnectedError: If not connected to MongoDB
            DocumentStoreError: If the batch fails
        """
        self._require_database()
        if not doc_ids:
            return

        ids = [_to_object_id(doc_id) for doc_id in doc_ids]

        async def delete_batch(transaction: MongoTransaction) -> int:
            result = await self.database[collection].delete_many(
                {"_id": {"$in": ids}}, session=transaction.session
            )
            return result.deleted_count

        deleted = await self.run_transaction(delete_batch)
        logger.debug(f"MongoDocumentStore: deleted {deleted} documents from {collection}")

    async def run_transaction(self, callback: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``callback`` inside a MongoDB multi-document transaction.

        Unlike ``ClientSession.with_transaction`` this never retries on
        transient errors; retrying is left to the caller.

        Raises:
            DocumentStoreNotConnectedError: If not connected to MongoDB
            TransactionAbortedError: If MongoDB aborts or fails the transaction
        """
        database = self._require_database()

        try:
            async with self.client.start_session() as session:
                async with await session.start_transaction():
                    return await callback(MongoTransaction(database, session))
        except PyMongoError as e:
            logger.warning("MongoDocumentStore: transaction aborted - %s", e)
            raise TransactionAbortedError(f"Transaction aborted: {e}") from e
