# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""LTI Storage Adapter.

A document database adapter for LTI tool hosts with per-collection expiry
and optional encryption of stored payloads.

Example:
    >>> from lti_storage import DocumentDatabase, init_document_store
    >>>
    >>> await init_document_store()          # reads DOCUMENT_STORE_TYPE, DOC_DB_* ...
    >>> db = DocumentDatabase(collection_prefix="ltijs-")
    >>> await db.insert("LTIKEY", "platforms", {"url": "https://lms"}, {"platformUrl": "https://lms"})
    >>> await db.get("LTIKEY", "platforms", {"platformUrl": "https://lms"})
"""

__version__ = "0.1.0"

from .client import get_document_store, init_document_store, shutdown_document_store
from .config import (
    AdapterConfig_DocumentStore,
    DriverConfig_DocumentStore_Inmemory,
    DriverConfig_DocumentStore_Mongodb,
    load_document_store_config,
)
from .database import Database
from .document_database import DocumentDatabase
from .document_store import (
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreConnectionError,
    DocumentStoreError,
    DocumentStoreNotConnectedError,
    Transaction,
    TransactionAbortedError,
)
from .exceptions import (
    DocumentNotFoundError,
    MissingCollectionError,
    MissingParamsError,
    MultipleDocumentsFoundError,
    PayloadDecryptionError,
    StorageError,
    TransactionError,
)
from .expiry import DEFAULT_COLLECTION_TTL_MINUTES, ExpiryPolicy
from .factory import create_document_store
from .inmemory_document_store import InMemoryDocumentStore
from .paths import CollectionPathResolver
from .payload_codec import EncryptedPayload, PayloadCodec
from .query import Query, build_query

__all__ = [
    # Version
    "__version__",
    # Database
    "Database",
    "DocumentDatabase",
    # Document Stores
    "DocumentStore",
    "DocumentSnapshot",
    "Transaction",
    "InMemoryDocumentStore",
    "create_document_store",
    "init_document_store",
    "get_document_store",
    "shutdown_document_store",
    # Configuration
    "AdapterConfig_DocumentStore",
    "DriverConfig_DocumentStore_Mongodb",
    "DriverConfig_DocumentStore_Inmemory",
    "load_document_store_config",
    # Building blocks
    "CollectionPathResolver",
    "Query",
    "build_query",
    "ExpiryPolicy",
    "DEFAULT_COLLECTION_TTL_MINUTES",
    "PayloadCodec",
    "EncryptedPayload",
    # Exceptions
    "StorageError",
    "MissingCollectionError",
    "MissingParamsError",
    "DocumentNotFoundError",
    "MultipleDocumentsFoundError",
    "TransactionError",
    "PayloadDecryptionError",
    "DocumentStoreError",
    "DocumentStoreNotConnectedError",
    "DocumentStoreConnectionError",
    "TransactionAbortedError",
]
