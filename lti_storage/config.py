# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Typed configuration for the document store adapter.

Configuration is read from environment variables:

- ``DOCUMENT_STORE_TYPE``: ``inmemory`` (default) or ``mongodb``
- ``DOC_DB_HOST``, ``DOC_DB_PORT``, ``DOC_DB_NAME``: MongoDB location
- ``DOC_DB_USER``, ``DOC_DB_PASSWORD``: MongoDB credentials (optional)
- ``DOC_DB_CONNECTION_STRING``: full MongoDB URI, used instead of host/port
- ``DOC_DB_REPLICA_SET``: replica set name (transactions need a replica set)
- ``LTI_COLLECTION_PREFIX``: prefix prepended to every collection path
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

DEFAULT_STORE_TYPE = "inmemory"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 27017
DEFAULT_DATABASE = "lti"


@dataclass
class DriverConfig_DocumentStore_Mongodb:
    """Settings for the MongoDB driver."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    database: str = DEFAULT_DATABASE
    username: str | None = None
    password: str | None = None
    connection_string: str | None = None
    replica_set: str | None = None


@dataclass
class DriverConfig_DocumentStore_Inmemory:
    """The in-memory driver has no settings."""


@dataclass
class AdapterConfig_DocumentStore:
    """Driver selection plus adapter-wide settings."""

    doc_store_type: str = DEFAULT_STORE_TYPE
    driver: DriverConfig_DocumentStore_Mongodb | DriverConfig_DocumentStore_Inmemory = field(
        default_factory=DriverConfig_DocumentStore_Inmemory
    )
    collection_prefix: str = ""


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as e:
        raise ValueError(f"DOC_DB_PORT must be an integer, got {value!r}") from e
    if not 0 < port < 65536:
        raise ValueError(f"DOC_DB_PORT must be between 1 and 65535, got {port}")
    return port


def load_document_store_config(environ: Mapping[str, str] | None = None) -> AdapterConfig_DocumentStore:
    """Build an AdapterConfig_DocumentStore from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ`` (useful for tests)

    Returns:
        Populated AdapterConfig_DocumentStore

    Raises:
        ValueError: If DOC_DB_PORT is not a valid port number
    """
    env = os.environ if environ is None else environ

    store_type = env.get("DOCUMENT_STORE_TYPE", DEFAULT_STORE_TYPE).strip().lower()
    prefix = env.get("LTI_COLLECTION_PREFIX", "")

    driver: DriverConfig_DocumentStore_Mongodb | DriverConfig_DocumentStore_Inmemory
    if store_type == "mongodb":
        driver = DriverConfig_DocumentStore_Mongodb(
            host=env.get("DOC_DB_HOST", DEFAULT_HOST),
            port=_parse_port(env.get("DOC_DB_PORT", str(DEFAULT_PORT))),
            database=env.get("DOC_DB_NAME", DEFAULT_DATABASE),
            username=env.get("DOC_DB_USER") or None,
            password=env.get("DOC_DB_PASSWORD") or None,
            connection_string=env.get("DOC_DB_CONNECTION_STRING") or None,
            replica_set=env.get("DOC_DB_REPLICA_SET") or None,
        )
    else:
        # Unknown types are rejected by the factory with the list of drivers
        driver = DriverConfig_DocumentStore_Inmemory()

    return AdapterConfig_DocumentStore(
        doc_store_type=store_type,
        driver=driver,
        collection_prefix=prefix,
    )
