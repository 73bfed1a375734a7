# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Shared fixtures for lti_storage tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from lti_storage import DocumentDatabase, InMemoryDocumentStore
from lti_storage import client as client_module


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a running MongoDB replica set")


@pytest.fixture
def store():
    """Create an in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def db(store):
    """Create a DocumentDatabase over the in-memory store."""
    return DocumentDatabase(store=store)


@pytest.fixture
def past():
    """A moment safely in the past."""
    return datetime.now(timezone.utc) - timedelta(hours=1)


@pytest.fixture
def future():
    """A moment safely in the future."""
    return datetime.now(timezone.utc) + timedelta(hours=1)


@pytest.fixture
def reset_process_store(monkeypatch):
    """Start each test without a process-wide store and restore it afterwards."""
    monkeypatch.setattr(client_module, "_document_store", None)
    monkeypatch.setattr(client_module, "_init_lock", asyncio.Lock())
    yield
