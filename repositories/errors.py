"""
Persistence errors.

Storage failures are surfaced as a single retryable error type so services and
the API never leak storage internals to callers.
"""

from __future__ import annotations


class StorageUnavailableError(RuntimeError):
    """Raised when durable storage cannot be reached or rejects an operation. Safe to retry."""

    retryable: bool = True


class DocumentNumberExhaustedError(StorageUnavailableError):
    """Raised when the allocator keeps colliding with existing document numbers."""


class DuplicateDocumentError(RuntimeError):
    """Raised when inserting a document whose (dealer, type, number) already exists."""


__all__ = [
    "StorageUnavailableError",
    "DocumentNumberExhaustedError",
    "DuplicateDocumentError",
]
