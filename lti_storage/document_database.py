# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Document database adapter implementing the LTI host's Database contract.

Replace runs its read-then-write inside a store transaction, so the
"at most one matching document" check and the write are atomic. Modify does
not: its read and its update are two separate store calls, and a concurrent
writer in between can be overwritten.
"""

import json
import logging
from typing import Any, Mapping

from .database import Database, EqualityQuery
from .document_store import DocumentSnapshot, DocumentStore, DocumentStoreError, Transaction
from .exceptions import (
    DocumentNotFoundError,
    MissingCollectionError,
    MissingParamsError,
    MultipleDocumentsFoundError,
    TransactionError,
)
from .expiry import CREATED_AT_FIELD, ExpiryPolicy, to_epoch_millis
from .models import DocumentBody, EncryptedBody, PlaintextBody
from .paths import CollectionPathResolver
from .payload_codec import PayloadCodec
from .query import Query, QueryValue, build_query

logger = logging.getLogger(__name__)


class DocumentDatabase(Database):
    """Database backed by a DocumentStore, with expiry and payload encryption."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        collection_prefix: str = "",
        expiry_policy: ExpiryPolicy | None = None,
        codec: PayloadCodec | None = None,
    ):
        """Initialize the adapter.

        Args:
            store: Document store to use. Defaults to the process-wide store
                   set up by ``lti_storage.client.init_document_store``.
            collection_prefix: Prefix prepended to every collection path, e.g.
                               ``"ltijs-"`` or ``"ltijs/index/"``
            expiry_policy: Expiry policy; defaults to the standard TTL table
            codec: Payload codec; defaults to AES-256-CBC PayloadCodec

        Raises:
            DocumentStoreNotConnectedError: If no store is given and the
                                            process-wide store is not initialized
        """
        if store is None:
            from .client import get_document_store

            store = get_document_store()

        self.store = store
        self.paths = CollectionPathResolver(collection_prefix)
        self.expiry = expiry_policy or ExpiryPolicy()
        self.codec = codec or PayloadCodec()

    @property
    def collection_prefix(self) -> str:
        return self.paths.prefix

    async def setup(self) -> bool:
        """No-op; the store is connected outside the adapter."""
        logger.info("DocumentDatabase: setup")
        return True

    async def close(self) -> bool:
        """No-op; the process-wide store connection is never closed here."""
        logger.info("DocumentDatabase: close")
        return True

    def _query(self, collection: str, query: EqualityQuery | None) -> Query:
        return build_query(Query(self.paths.resolve(collection)), query)

    def _build_body(
        self,
        secret: str | None,
        item: Mapping[str, Any],
        index: Mapping[str, QueryValue] | None,
    ) -> DocumentBody:
        if secret:
            return EncryptedBody(
                index_fields=dict(index or {}),
                payload=self.codec.encrypt_payload(item, secret),
            )
        return PlaintextBody(fields=dict(item))

    def _new_document(self, secret: str | None, collection: str, item: Any, index: Any) -> dict[str, Any]:
        if not collection or item is None or (secret and index is None):
            raise MissingParamsError("collection and item are required, and index is required with a secret")

        document = self._build_body(secret, item, index).to_document()
        document.update(self.expiry.stamp(collection))
        return document

    def _decrypt_document(self, snapshot: DocumentSnapshot, secret: str) -> dict[str, Any]:
        stored = snapshot.data
        result = self.codec.decrypt_payload(stored.get("iv"), stored.get("data"), secret)

        created_at = to_epoch_millis(stored.get(CREATED_AT_FIELD))
        if created_at is not None:
            result[CREATED_AT_FIELD] = created_at
        return result

    async def get(
        self, secret: str | None, collection: str, query: EqualityQuery | None = None
    ) -> list[dict[str, Any]] | bool:
        """Return live documents matching ``query``, or False if there are none.

        With a secret, each result is the decrypted payload plus ``createdAt``
        in epoch milliseconds; index and encryption fields are dropped.
        Without one, documents are returned as stored.

        Raises:
            MissingCollectionError: If collection is empty
            PayloadDecryptionError: If a stored payload cannot be decrypted
        """
        if not collection:
            raise MissingCollectionError("collection is required")

        snapshots = await self.store.query_documents(self._query(collection, query))
        live = self.expiry.filter_live(snapshots)

        if secret:
            results = [self._decrypt_document(snapshot, secret) for snapshot in live]
        else:
            results = [snapshot.data for snapshot in live]

        logger.debug(
            "DocumentDatabase: get on %s returned %d of %d documents",
            self.paths.resolve(collection), len(results), len(snapshots),
        )
        if not results:
            return False
        return results

    async def insert(
        self,
        secret: str | None,
        collection: str,
        item: Mapping[str, Any] | None,
        index: Mapping[str, QueryValue] | None = None,
    ) -> bool:
        """Store a new document; no uniqueness check is made.

        Raises:
            MissingParamsError: If collection or item is missing, or if a
                                secret is given without index fields
        """
        document = self._new_document(secret, collection, item, index)
        await self.store.insert_document(self.paths.resolve(collection), document)
        return True

    async def replace(
        self,
        secret: str | None,
        collection: str,
        query: EqualityQuery | None,
        item: Mapping[str, Any] | None,
        index: Mapping[str, QueryValue] | None = None,
    ) -> bool:
        """Overwrite the single document matching ``query``, or create it.

        The expiry stamp is always renewed so a replaced document that had
        expired becomes readable again.

        Raises:
            MissingParamsError: If collection or item is missing, or if a
                                secret is given without index fields
            MultipleDocumentsFoundError: If more than one document matches
            TransactionError: If the store aborts the transaction
        """
        document = self._new_document(secret, collection, item, index)
        path = self.paths.resolve(collection)
        store_query = self._query(collection, query)

        async def replace_single(transaction: Transaction) -> None:
            matches = await transaction.get(store_query)
            if len(matches) > 1:
                raise MultipleDocumentsFoundError(self._multiple_found_message(path, query))
            if not matches:
                await transaction.set(path, None, document)
            else:
                await transaction.set(path, matches[0].id, document)

        try:
            await self.store.run_transaction(replace_single)
        except DocumentStoreError as e:
            logger.warning("DocumentDatabase: replace on %s aborted - %s", path, e)
            raise TransactionError(f"Transaction failed on {path}") from e

        return True

    async def modify(
        self,
        secret: str | None,
        collection: str,
        query: EqualityQuery | None,
        modification: Mapping[str, Any] | None,
    ) -> bool:
        """Patch fields of the single document matching ``query``.

        Without a secret the whole modification is applied as a field
        update. An empty modification still requires exactly one match but
        writes nothing. With a secret only the first key of ``modification`` is
        applied to the decrypted payload, which is then re-encrypted; index
        fields are left untouched.

        Raises:
            MissingParamsError: If collection, query or modification is None
            DocumentNotFoundError: If no document matches
            MultipleDocumentsFoundError: If more than one document matches
            PayloadDecryptionError: If the stored payload cannot be decrypted
        """
        if not collection or query is None or modification is None:
            raise MissingParamsError("collection, query and modification are required")

        path = self.paths.resolve(collection)
        matches = await self.store.query_documents(self._query(collection, query))

        if not matches:
            raise DocumentNotFoundError(f"No document found in {path} for query {_dump_query(query)}")
        if len(matches) > 1:
            raise MultipleDocumentsFoundError(self._multiple_found_message(path, query))

        target = matches[0]
        if not modification:
            logger.debug("DocumentDatabase: empty modification for document %s in %s", target.id, path)
            return True

        patch: dict[str, Any] = dict(modification)
        if secret:
            payload = self.codec.decrypt_payload(target.data.get("iv"), target.data.get("data"), secret)
            key, value = next(iter(modification.items()))
            payload[key] = value
            patch = self.codec.encrypt_payload(payload, secret).to_fields()

        await self.store.update_document(path, target.id, patch)
        logger.debug("DocumentDatabase: modified document %s in %s", target.id, path)
        return True

    async def delete(self, collection: str, query: EqualityQuery | None) -> bool:
        """Delete every document matching ``query`` in one atomic batch.

        An empty query deletes the whole collection; matching nothing is not
        an error.

        Raises:
            MissingParamsError: If collection or query is missing
        """
        if not collection or query is None:
            raise MissingParamsError("collection and query are required")

        path = self.paths.resolve(collection)
        matches = await self.store.query_documents(self._query(collection, query))
        await self.store.delete_documents(path, [snapshot.id for snapshot in matches])

        logger.debug("DocumentDatabase: deleted %d documents from %s", len(matches), path)
        return True

    def _multiple_found_message(self, path: str, query: EqualityQuery | None) -> str:
        return f"Multiple documents found: {path} | {_dump_query(query)}"


def _dump_query(query: EqualityQuery | None) -> str:
    return json.dumps(dict(query or {}), default=str)
