# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Per-collection time-to-live stamping and expired-document filtering."""

import logging
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

CREATED_AT_FIELD = "createdAt"
EXPIRES_AT_FIELD = "expiresAt"

# Minutes before a document in the collection is considered expired.
# Collections not listed here never expire.
DEFAULT_COLLECTION_TTL_MINUTES: Mapping[str, int] = MappingProxyType({
    "accesstoken": 60,
    "contexttoken": 24 * 60,
    "idtoken": 24 * 60,
    "nonce": 2,
    "state": 10,
})


def to_datetime(value: Any) -> datetime | None:
    """Convert a stored timestamp to an aware UTC datetime.

    Accepts ``datetime`` instances and timestamp objects exposing a callable
    ``to_datetime()``. Naive datetimes are taken to be UTC, which is how
    document databases hand back stored dates by default.

    Returns:
        Aware datetime, or None if the value is not a usable timestamp
    """
    if not isinstance(value, datetime):
        converter = getattr(value, "to_datetime", None)
        if not callable(converter):
            return None
        try:
            value = converter()
        except (TypeError, ValueError, OverflowError):
            return None
        if not isinstance(value, datetime):
            return None

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_millis(value: Any) -> int | None:
    """Convert a stored timestamp to milliseconds since the Unix epoch."""
    moment = to_datetime(value)
    if moment is None:
        return None
    return (moment - _EPOCH) // timedelta(milliseconds=1)


class ExpiryPolicy:
    """Stamps documents with creation/expiry times and detects expired ones."""

    def __init__(self, ttl_minutes: Mapping[str, int] | None = None):
        """Initialize the policy.

        Args:
            ttl_minutes: Mapping of logical collection name to TTL in minutes.
                         Defaults to DEFAULT_COLLECTION_TTL_MINUTES. The table is
                         copied and cannot change after construction.
        """
        table = DEFAULT_COLLECTION_TTL_MINUTES if ttl_minutes is None else ttl_minutes
        self._ttl_minutes = MappingProxyType(dict(table))

    @property
    def ttl_minutes(self) -> Mapping[str, int]:
        return self._ttl_minutes

    def ttl_for(self, collection: str) -> timedelta | None:
        """Return the TTL of a logical collection, or None if it never expires."""
        minutes = self._ttl_minutes.get(collection)
        if not minutes:
            return None
        return timedelta(minutes=minutes)

    def stamp(self, collection: str, now: datetime | None = None) -> dict[str, datetime]:
        """Build the timestamp fields for a document written now.

        ``expiresAt`` is left out entirely for collections without a TTL.
        """
        now = now or datetime.now(timezone.utc)
        fields = {CREATED_AT_FIELD: now}
        ttl = self.ttl_for(collection)
        if ttl is not None:
            fields[EXPIRES_AT_FIELD] = now + ttl
        return fields

    def is_expired(self, document: Any, now: datetime | None = None) -> bool:
        """Check whether a document's expiry time lies strictly in the past.

        Missing or malformed expiry fields never count as expired.
        """
        if not isinstance(document, Mapping):
            return False

        expires_at = to_datetime(document.get(EXPIRES_AT_FIELD))
        if expires_at is None:
            return False

        now = now or datetime.now(timezone.utc)
        return expires_at < now

    def filter_live(self, documents: Iterable[Any], now: datetime | None = None) -> list[Any]:
        """Drop expired documents from a read result.

        Items may be plain mappings or snapshots exposing a ``data`` mapping.
        Expired documents are only filtered out, never deleted.
        """
        now = now or datetime.now(timezone.utc)
        live = []
        for document in documents:
            data = getattr(document, "data", document)
            if self.is_expired(data, now):
                logger.debug("ExpiryPolicy: skipping expired document")
                continue
            live.append(document)
        return live
