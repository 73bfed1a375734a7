# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Factory for creating document store instances based on configuration."""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from .config import (
    AdapterConfig_DocumentStore,
    DriverConfig_DocumentStore_Inmemory,
    DriverConfig_DocumentStore_Mongodb,
    load_document_store_config,
)
from .document_store import DocumentStore
from .inmemory_document_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

_DriverConfig = DriverConfig_DocumentStore_Mongodb | DriverConfig_DocumentStore_Inmemory


def _build_mongodb(config: _DriverConfig) -> DocumentStore:
    if not isinstance(config, DriverConfig_DocumentStore_Mongodb):
        raise TypeError("driver config must be DriverConfig_DocumentStore_Mongodb")
    # Imported lazily so the in-memory driver works without pymongo installed
    from .mongo_document_store import MongoDocumentStore

    return MongoDocumentStore.from_config(config)


def _build_inmemory(config: _DriverConfig) -> DocumentStore:
    if not isinstance(config, DriverConfig_DocumentStore_Inmemory):
        raise TypeError("driver config must be DriverConfig_DocumentStore_Inmemory")
    return InMemoryDocumentStore.from_config(config)


_DRIVERS: Mapping[str, Callable[[_DriverConfig], DocumentStore]] = {
    "mongodb": _build_mongodb,
    "inmemory": _build_inmemory,
}


def create_document_store(config: AdapterConfig_DocumentStore | None = None) -> DocumentStore:
    """Create a document store instance.

    Args:
        config: Typed AdapterConfig_DocumentStore instance. If None, the
                configuration is loaded from environment variables.

    Returns:
        DocumentStore instance (not yet connected).

    Raises:
        ValueError: If doc_store_type is unknown.
    """
    if config is None:
        config = load_document_store_config()

    driver_type = str(config.doc_store_type).lower()
    try:
        factory = _DRIVERS[driver_type]
    except KeyError as exc:
        supported = ", ".join(sorted(_DRIVERS.keys()))
        raise ValueError(
            f"Unknown document_store driver: {driver_type}. Supported drivers: {supported}"
        ) from exc

    logger.debug("Creating %s document store", driver_type)
    return factory(config.driver)
