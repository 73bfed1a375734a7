# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Process-wide document store connection.

The store is created and connected once at startup with
``init_document_store`` and shared by every DocumentDatabase created
afterwards. It is only torn down at process shutdown.
"""

import asyncio
import logging

from .config import AdapterConfig_DocumentStore
from .document_store import DocumentStore, DocumentStoreNotConnectedError
from .factory import create_document_store

logger = logging.getLogger(__name__)

_document_store: DocumentStore | None = None
# Serializes concurrent init calls so only one store is ever connected
_init_lock = asyncio.Lock()


async def init_document_store(
    config: AdapterConfig_DocumentStore | None = None,
    store: DocumentStore | None = None,
) -> DocumentStore:
    """Create and connect the process-wide document store.

    Calling this again, including concurrently, returns the already
    initialized store.

    Args:
        config: Store configuration; loaded from the environment when None
        store: Pre-built store to use instead of creating one from config

    Returns:
        The connected process-wide DocumentStore

    Raises:
        DocumentStoreConnectionError: If the store cannot connect
    """
    global _document_store

    if _document_store is not None:
        return _document_store

    async with _init_lock:
        if _document_store is not None:
            return _document_store

        candidate = store if store is not None else create_document_store(config)
        await candidate.connect()
        _document_store = candidate
        logger.info("Initialized process-wide %s", type(candidate).__name__)
        return candidate


def get_document_store() -> DocumentStore:
    """Return the process-wide document store.

    Raises:
        DocumentStoreNotConnectedError: If init_document_store was not called
    """
    if _document_store is None:
        raise DocumentStoreNotConnectedError(
            "Document store is not initialized; call init_document_store() at startup"
        )
    return _document_store


async def shutdown_document_store() -> None:
    """Disconnect and forget the process-wide document store."""
    global _document_store

    if _document_store is None:
        return

    store, _document_store = _document_store, None
    await store.disconnect()
    logger.info("Shut down process-wide %s", type(store).__name__)
