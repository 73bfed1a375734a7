# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Tests for DocumentDatabase."""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from lti_storage import (
    Database,
    DocumentDatabase,
    DocumentNotFoundError,
    DocumentStoreError,
    DocumentStoreNotConnectedError,
    InMemoryDocumentStore,
    MissingCollectionError,
    MissingParamsError,
    MultipleDocumentsFoundError,
    PayloadCodec,
    PayloadDecryptionError,
    Query,
    TransactionAbortedError,
    TransactionError,
    init_document_store,
)


async def stored_documents(store, collection):
    """Return the raw stored data of every document in a collection."""
    return [snapshot.data for snapshot in await store.query_documents(Query(collection))]


class TestLifecycle:
    """Tests for setup/close and store injection."""

    def test_is_database(self, db):
        """Test that DocumentDatabase implements the host contract."""
        assert isinstance(db, Database)

    @pytest.mark.asyncio
    async def test_setup_and_close_are_noops(self, db, store):
        """Test that setup and close succeed without touching the store."""
        assert await db.setup() is True
        assert await db.close() is True
        assert await db.setup() is True

    def test_default_prefix(self, db):
        """Test that the collection prefix defaults to empty."""
        assert db.collection_prefix == ""

    @pytest.mark.asyncio
    async def test_uses_process_wide_store(self, reset_process_store):
        """Test that the process-wide store is injected when none is given."""
        store = InMemoryDocumentStore()
        await init_document_store(store=store)

        db = DocumentDatabase()

        assert db.store is store

    def test_requires_initialized_store(self, reset_process_store):
        """Test that a missing process-wide store is reported."""
        with pytest.raises(DocumentStoreNotConnectedError):
            DocumentDatabase()


class TestGet:
    """Tests for DocumentDatabase.get."""

    @pytest.mark.asyncio
    async def test_missing_collection(self, db):
        """Test that an empty collection name is rejected."""
        with pytest.raises(MissingCollectionError):
            await db.get(None, "", {"id": "x"})

    @pytest.mark.asyncio
    async def test_returns_false_when_empty(self, db):
        """Test the failure sentinel for no matches."""
        assert await db.get(None, "widgets", {"id": "missing"}) is False

    @pytest.mark.asyncio
    async def test_encrypted_result_has_payload_and_created_at_only(self, db):
        """Test that a secret yields the decrypted payload plus createdAt."""
        await db.insert("LTIKEY", "widgets", {"foo": "bar-1"}, {"id": "id-1"})

        result = await db.get("LTIKEY", "widgets", {"id": "id-1"})

        assert len(result) == 1
        assert set(result[0]) == {"foo", "createdAt"}
        assert result[0]["foo"] == "bar-1"
        assert isinstance(result[0]["createdAt"], int)

    @pytest.mark.asyncio
    async def test_index_is_ignored_without_secret(self, db):
        """Test that index fields are not stored when no secret is given."""
        await db.insert(None, "widgets", {"foo": "bar-2"}, {"id": "id-2"})

        assert await db.get(None, "widgets", {"id": "id-2"}) is False

    @pytest.mark.asyncio
    async def test_query_by_item_without_secret(self, db):
        """Test that plaintext documents are returned as stored."""
        await db.insert(False, "widgets", {"id": "id-3", "name": "tyson"})

        result = await db.get(False, "widgets", {"id": "id-3"})

        assert len(result) == 1
        assert set(result[0]) == {"id", "name", "createdAt"}
        assert result[0]["name"] == "tyson"
        assert isinstance(result[0]["createdAt"], datetime)

    @pytest.mark.asyncio
    async def test_plaintext_fields_are_not_reduced(self, db):
        """Test that a plaintext read keeps every stored field."""
        await db.insert(False, "widgets", {"foo": "bar-2", "id": "id-2"})

        result = await db.get(False, "widgets", {"id": "id-2"})

        assert {"foo", "id", "createdAt"} <= set(result[0])

    @pytest.mark.asyncio
    async def test_multiple_matches(self, db):
        """Test that all matching documents are returned."""
        await db.insert(
            "LTIKEY", "widgets", {"platformName": "Adara"},
            {"platformId": "p1", "location": "Van", "count": 1},
        )
        await db.insert(
            "LTIKEY", "widgets", {"platformName": "Arius"},
            {"platformId": "p1", "location": "Van", "count": 2},
        )

        result = await db.get("LTIKEY", "widgets", {"platformId": "p1", "location": "Van"})

        assert len(result) == 2
        assert {r["platformName"] for r in result} == {"Adara", "Arius"}

    @pytest.mark.asyncio
    async def test_exact_match_only(self, db):
        """Test that every query field has to match."""
        await db.insert("LTIKEY", "widgets", {"platformName": "Acantha"}, {"platformId": "p2", "location": "Burnaby"})
        await db.insert("LTIKEY", "widgets", {"platformName": "Acestes"}, {"platformId": "p2", "location": "Coquitlam"})

        result = await db.get("LTIKEY", "widgets", {"platformId": "p2", "location": "Coquitlam"})

        assert len(result) == 1
        assert result[0]["platformName"] == "Acestes"

    @pytest.mark.asyncio
    async def test_empty_query_reads_whole_collection(self, db):
        """Test that a missing query returns the whole collection."""
        await db.insert(None, "widgets", {"a": 1})
        await db.insert(None, "widgets", {"a": 2})

        assert len(await db.get(None, "widgets")) == 2
        assert len(await db.get(None, "widgets", {})) == 2

    @pytest.mark.asyncio
    async def test_expired_documents_are_hidden_not_deleted(self, db, store, past):
        """Test that expired documents are filtered out but stay stored."""
        await store.insert_document("nonce", {"nonce": "n1", "createdAt": past, "expiresAt": past})

        assert await db.get(None, "nonce", {"nonce": "n1"}) is False
        assert len(await stored_documents(store, "nonce")) == 1

    @pytest.mark.asyncio
    async def test_malformed_expiry_is_returned(self, db, store):
        """Test that a malformed expiresAt never hides a document."""
        await store.insert_document("nonce", {"nonce": "n1", "expiresAt": "not a date"})

        result = await db.get(None, "nonce", {"nonce": "n1"})

        assert len(result) == 1

    @pytest.mark.asyncio
    async def test_fresh_ttl_document_is_returned(self, db):
        """Test that a just-inserted document in a TTL collection is live."""
        await db.insert(None, "accesstoken", {"token": "t1"})

        result = await db.get(None, "accesstoken", {"token": "t1"})

        assert len(result) == 1
        assert result[0]["expiresAt"] > result[0]["createdAt"]

    @pytest.mark.asyncio
    async def test_wrong_secret_raises(self, db):
        """Test that reading with a different secret does not return the payload."""
        await db.insert("LTIKEY", "widgets", {"foo": "bar"}, {"id": "id-1"})

        try:
            result = await db.get("OTHER", "widgets", {"id": "id-1"})
        except PayloadDecryptionError:
            return
        assert result != [{"foo": "bar"}]

    @pytest.mark.asyncio
    async def test_collection_prefix(self, store):
        """Test that documents are stored under the prefixed path."""
        db = DocumentDatabase(store=store, collection_prefix="ltijs-")
        await db.insert(None, "platforms", {"url": "https://lms"})

        assert len(await stored_documents(store, "ltijs-platforms")) == 1
        assert await stored_documents(store, "platforms") == []
        assert len(await db.get(None, "platforms", {"url": "https://lms"})) == 1


class TestInsert:
    """Tests for DocumentDatabase.insert."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "secret,collection,item,index",
        [
            (None, "", {"a": 1}, None),
            (None, "widgets", None, None),
            ("LTIKEY", "widgets", {"a": 1}, None),
        ],
    )
    async def test_missing_params(self, db, secret, collection, item, index):
        """Test parameter validation."""
        with pytest.raises(MissingParamsError):
            await db.insert(secret, collection, item, index)

    @pytest.mark.asyncio
    async def test_plaintext_document_shape(self, db, store):
        """Test the persisted shape without a secret."""
        assert await db.insert(None, "platforms", {"url": "https://lms"}) is True

        [stored] = await stored_documents(store, "platforms")
        assert set(stored) == {"url", "createdAt"}

    @pytest.mark.asyncio
    async def test_encrypted_document_shape(self, db, store):
        """Test the persisted shape with a secret and a TTL collection."""
        await db.insert("LTIKEY", "accesstoken", {"token": "secret-token"}, {"platformUrl": "https://lms"})

        [stored] = await stored_documents(store, "accesstoken")
        assert set(stored) == {"platformUrl", "iv", "data", "createdAt", "expiresAt"}
        assert "secret-token" not in stored["data"]
        assert PayloadCodec().decrypt_payload(stored["iv"], stored["data"], "LTIKEY") == {"token": "secret-token"}

    @pytest.mark.asyncio
    async def test_empty_index_allowed_with_secret(self, db, store):
        """Test that an empty index mapping satisfies the secret requirement."""
        await db.insert("LTIKEY", "widgets", {"a": 1}, {})

        [stored] = await stored_documents(store, "widgets")
        assert set(stored) == {"iv", "data", "createdAt"}

    @pytest.mark.asyncio
    async def test_no_uniqueness_check(self, db, store):
        """Test that inserting the same item twice stores two documents."""
        await db.insert(None, "widgets", {"id": "dup"})
        await db.insert(None, "widgets", {"id": "dup"})

        assert len(await stored_documents(store, "widgets")) == 2


class TestReplace:
    """Tests for DocumentDatabase.replace."""

    @pytest.mark.asyncio
    async def test_missing_params(self, db):
        """Test parameter validation mirrors insert."""
        with pytest.raises(MissingParamsError):
            await db.replace("LTIKEY", "widgets", {"id": "x"}, {"a": 1}, None)
        with pytest.raises(MissingParamsError):
            await db.replace(None, "widgets", {"id": "x"}, None)

    @pytest.mark.asyncio
    async def test_creates_when_no_match(self, db, store):
        """Test that replace inserts when nothing matches."""
        assert await db.replace(None, "platforms", {"url": "https://lms"}, {"url": "https://lms", "name": "A"}) is True

        [stored] = await stored_documents(store, "platforms")
        assert stored["name"] == "A"

    @pytest.mark.asyncio
    async def test_overwrites_single_match_in_place(self, db, store):
        """Test that the single match is fully replaced and keeps its ID."""
        await db.insert(None, "platforms", {"url": "https://lms", "name": "A", "extra": 1})
        [before] = await store.query_documents(Query("platforms"))

        await db.replace(None, "platforms", {"url": "https://lms"}, {"url": "https://lms", "name": "B"})

        [after] = await store.query_documents(Query("platforms"))
        assert after.id == before.id
        assert after.data["name"] == "B"
        assert "extra" not in after.data

    @pytest.mark.asyncio
    async def test_encrypted_replace(self, db):
        """Test replacing an encrypted document."""
        await db.insert("LTIKEY", "widgets", {"foo": "old"}, {"id": "id-1"})

        await db.replace("LTIKEY", "widgets", {"id": "id-1"}, {"foo": "new"}, {"id": "id-1"})

        result = await db.get("LTIKEY", "widgets", {"id": "id-1"})
        assert [r["foo"] for r in result] == ["new"]

    @pytest.mark.asyncio
    async def test_multiple_matches_rejected(self, db, store):
        """Test that duplicate matches abort without writing."""
        await db.insert(None, "widgets", {"id": "dup", "n": 1})
        await db.insert(None, "widgets", {"id": "dup", "n": 2})

        with pytest.raises(MultipleDocumentsFoundError, match="widgets"):
            await db.replace(None, "widgets", {"id": "dup"}, {"id": "dup", "n": 3})

        assert sorted(d["n"] for d in await stored_documents(store, "widgets")) == [1, 2]

    @pytest.mark.asyncio
    async def test_revives_expired_document(self, db, store, past):
        """Test that replacing an expired document makes it readable again."""
        await store.insert_document("state", {"state": "s1", "createdAt": past, "expiresAt": past})
        assert await db.get(None, "state", {"state": "s1"}) is False

        await db.replace(None, "state", {"state": "s1"}, {"state": "s1", "value": 2})

        result = await db.get(None, "state", {"state": "s1"})
        assert len(result) == 1
        assert result[0]["value"] == 2
        assert len(await stored_documents(store, "state")) == 1

    @pytest.mark.asyncio
    async def test_store_abort_becomes_transaction_error(self, db, store):
        """Test that a concurrent write surfaces as TransactionError."""
        real_run_transaction = store.run_transaction

        async def run_with_conflict(callback):
            async def interleaved(transaction):
                result = await callback(transaction)
                await store.insert_document("widgets", {"id": "id-1"})
                return result

            return await real_run_transaction(interleaved)

        store.run_transaction = run_with_conflict

        with pytest.raises(TransactionError) as excinfo:
            await db.replace(None, "widgets", {"id": "id-1"}, {"id": "id-1"})

        assert isinstance(excinfo.value.__cause__, TransactionAbortedError)

    @pytest.mark.asyncio
    async def test_store_error_becomes_transaction_error(self, db, store):
        """Test that any store failure inside the transaction is wrapped."""
        store.run_transaction = AsyncMock(side_effect=DocumentStoreError("down"))

        with pytest.raises(TransactionError):
            await db.replace(None, "widgets", {"id": "id-1"}, {"id": "id-1"})

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, db, store):
        """Test that an aborted transaction is attempted once."""
        store.run_transaction = AsyncMock(side_effect=TransactionAbortedError("conflict"))

        with pytest.raises(TransactionError):
            await db.replace(None, "widgets", {"id": "id-1"}, {"id": "id-1"})

        assert store.run_transaction.await_count == 1


class TestModify:
    """Tests for DocumentDatabase.modify."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "collection,query,modification",
        [
            ("", {"id": "x"}, {"a": 1}),
            ("widgets", None, {"a": 1}),
            ("widgets", {"id": "x"}, None),
        ],
    )
    async def test_missing_params(self, db, collection, query, modification):
        """Test parameter validation."""
        with pytest.raises(MissingParamsError):
            await db.modify(None, collection, query, modification)

    @pytest.mark.asyncio
    async def test_empty_modification_leaves_document_unchanged(self, db, store):
        """Test that an empty patch is accepted and writes nothing."""
        await db.insert("LTIKEY", "platforms", {"name": "A"}, {"platformUrl": "https://lms"})
        [before] = await stored_documents(store, "platforms")

        assert await db.modify("LTIKEY", "platforms", {"platformUrl": "https://lms"}, {}) is True

        [after] = await stored_documents(store, "platforms")
        assert after == before

    @pytest.mark.asyncio
    async def test_empty_modification_still_requires_a_match(self, db):
        """Test that an empty patch on a missing document raises DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError):
            await db.modify(None, "widgets", {"id": "missing"}, {})

    @pytest.mark.asyncio
    async def test_no_match(self, db):
        """Test that modifying nothing raises DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError):
            await db.modify(None, "widgets", {"id": "missing"}, {"a": 1})

    @pytest.mark.asyncio
    async def test_multiple_matches(self, db, store):
        """Test that duplicate matches are rejected without writing."""
        await db.insert(None, "widgets", {"id": "dup", "n": 1})
        await db.insert(None, "widgets", {"id": "dup", "n": 2})

        with pytest.raises(MultipleDocumentsFoundError):
            await db.modify(None, "widgets", {"id": "dup"}, {"n": 3})

        assert sorted(d["n"] for d in await stored_documents(store, "widgets")) == [1, 2]

    @pytest.mark.asyncio
    async def test_plaintext_partial_update(self, db, store):
        """Test that every patched field is applied and others kept."""
        await db.insert(None, "platforms", {"url": "https://lms", "name": "A", "active": False})

        assert await db.modify(None, "platforms", {"url": "https://lms"}, {"name": "B", "active": True}) is True

        [stored] = await stored_documents(store, "platforms")
        assert stored["name"] == "B"
        assert stored["active"] is True
        assert stored["url"] == "https://lms"

    @pytest.mark.asyncio
    async def test_encrypted_applies_first_key_only(self, db, store):
        """Test that only the first patched key reaches the encrypted payload."""
        await db.insert("LTIKEY", "platforms", {"name": "A", "active": False}, {"platformUrl": "https://lms"})

        await db.modify("LTIKEY", "platforms", {"platformUrl": "https://lms"}, {"name": "B", "active": True})

        [result] = await db.get("LTIKEY", "platforms", {"platformUrl": "https://lms"})
        assert result["name"] == "B"
        assert result["active"] is False

        [stored] = await stored_documents(store, "platforms")
        assert stored["platformUrl"] == "https://lms"
        assert "name" not in stored

    @pytest.mark.asyncio
    async def test_encrypted_rotates_iv(self, db, store):
        """Test that re-encryption writes a new IV."""
        await db.insert("LTIKEY", "platforms", {"name": "A"}, {"platformUrl": "https://lms"})
        [before] = await stored_documents(store, "platforms")

        await db.modify("LTIKEY", "platforms", {"platformUrl": "https://lms"}, {"name": "B"})

        [after] = await stored_documents(store, "platforms")
        assert after["iv"] != before["iv"]
        assert after["createdAt"] == before["createdAt"]

    @pytest.mark.asyncio
    async def test_ignores_expiry(self, db, store, past):
        """Test that modify finds expired documents and does not re-stamp them."""
        await store.insert_document("nonce", {"nonce": "n1", "expiresAt": past})

        await db.modify(None, "nonce", {"nonce": "n1"}, {"used": True})

        [stored] = await stored_documents(store, "nonce")
        assert stored["used"] is True
        assert stored["expiresAt"] == past


class TestDelete:
    """Tests for DocumentDatabase.delete."""

    @pytest.mark.asyncio
    async def test_missing_params(self, db):
        """Test parameter validation."""
        with pytest.raises(MissingParamsError):
            await db.delete("", {"id": "x"})
        with pytest.raises(MissingParamsError):
            await db.delete("widgets", None)

    @pytest.mark.asyncio
    async def test_deletes_all_matches(self, db, store):
        """Test that every matching document is removed."""
        await db.insert(None, "widgets", {"id": "dup", "n": 1})
        await db.insert(None, "widgets", {"id": "dup", "n": 2})
        await db.insert(None, "widgets", {"id": "other"})

        assert await db.delete("widgets", {"id": "dup"}) is True

        remaining = await stored_documents(store, "widgets")
        assert [d["id"] for d in remaining] == ["other"]

    @pytest.mark.asyncio
    async def test_deletes_expired_documents(self, db, store, past):
        """Test that expired documents are physically removed."""
        await store.insert_document("nonce", {"nonce": "n1", "expiresAt": past})

        await db.delete("nonce", {"nonce": "n1"})

        assert await stored_documents(store, "nonce") == []

    @pytest.mark.asyncio
    async def test_no_match_is_not_an_error(self, db):
        """Test deleting nothing."""
        assert await db.delete("widgets", {"id": "missing"}) is True

    @pytest.mark.asyncio
    async def test_empty_query_deletes_collection(self, db, store):
        """Test that an empty query mapping targets the whole collection."""
        await db.insert(None, "widgets", {"a": 1})
        await db.insert(None, "widgets", {"a": 2})

        await db.delete("widgets", {})

        assert await stored_documents(store, "widgets") == []

    @pytest.mark.asyncio
    async def test_uses_single_batch(self, db, store):
        """Test that matches are deleted with one batch call."""
        await db.insert(None, "widgets", {"id": "dup"})
        await db.insert(None, "widgets", {"id": "dup"})
        store.delete_documents = AsyncMock()

        await db.delete("widgets", {"id": "dup"})

        store.delete_documents.assert_awaited_once()
        collection, doc_ids = store.delete_documents.await_args.args
        assert collection == "widgets"
        assert len(doc_ids) == 2
