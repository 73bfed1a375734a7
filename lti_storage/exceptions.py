# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Exceptions raised by the LTI database adapter."""


class StorageError(Exception):
    """Base exception for caller-visible adapter errors."""

    code = "STORAGE_ERROR"


class MissingCollectionError(StorageError):
    """Exception raised when an operation is called without a collection."""

    code = "MISSING_COLLECTION"


class MissingParamsError(StorageError):
    """Exception raised when required operation parameters are missing."""

    code = "MISSING_PARAMS"


class DocumentNotFoundError(StorageError):
    """Exception raised when no document matches a query that must match one."""

    code = "DOCUMENT_NOT_FOUND"


class MultipleDocumentsFoundError(StorageError):
    """Exception raised when a query that must be unique matches several documents.

    This is a data-integrity violation in the underlying store; the adapter
    never resolves it by picking one of the matches.
    """

    code = "MULTIPLE_DOCUMENTS_FOUND"


class TransactionError(StorageError):
    """Exception raised when a replace transaction is aborted by the store."""

    code = "TRANSACTION_ERROR"


class PayloadDecryptionError(StorageError):
    """Exception raised when an encrypted payload cannot be decrypted."""

    code = "DECRYPTION_ERROR"
