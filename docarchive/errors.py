"""
Error types for docarchive.

This module defines all exception types raised by the package:
- ArchiveError: Base exception
- ValidationError: Configuration options failed shape validation
- ReservedFieldError: Document already carries a provenance field
- StoreError: Failure in the underlying find/insert/delete primitives
- DuplicateDocumentError: Insert collided with an existing identifier
- SelectorError: Selector could not be interpreted
- TransactionError: Commit failed or a finished transaction was reused

Invariants:
    - All errors inherit from ArchiveError
    - Store and transaction errors propagate unchanged to callers
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ArchiveError(Exception):
    """Base exception for all docarchive errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ARCHIVE_ERROR"
        self.details = details or {}


class ValidationError(ArchiveError):
    """Configuration options failed validation.

    Raised when:
    - `name` is not a non-empty string
    - `overrideRemove` or `preserveIds` is not a boolean
    - `exclude` is not a list of strings
    - An unknown option is passed
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class ReservedFieldError(ArchiveError):
    """A document uses a field name reserved for archive provenance.

    Attributes:
        collection: Collection the document lives in
        document_id: Identifier of the offending document
        fields: Reserved fields found on the document
    """

    def __init__(
        self,
        collection: str,
        document_id: Any,
        fields: List[str],
    ) -> None:
        super().__init__(
            f"Document '{document_id}' in '{collection}' uses reserved "
            f"field(s): {', '.join(fields)}",
            code="RESERVED_FIELD",
            details={
                "collection": collection,
                "document_id": document_id,
                "fields": fields,
            },
        )
        self.collection = collection
        self.document_id = document_id
        self.fields = fields


class StoreError(ArchiveError):
    """Underlying store operation failed."""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "STORE_ERROR",
            details={"collection": collection},
        )
        self.collection = collection


class DuplicateDocumentError(StoreError):
    """Insert would reuse an identifier that already exists."""

    def __init__(self, collection: str, document_id: Any) -> None:
        super().__init__(
            f"Document '{document_id}' already exists in '{collection}'",
            collection=collection,
            code="DUPLICATE_DOCUMENT",
        )
        self.details["document_id"] = document_id
        self.document_id = document_id


class SelectorError(StoreError):
    """Selector is malformed or uses an unsupported operator."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_SELECTOR")


class TransactionError(ArchiveError):
    """Transaction could not be committed or is no longer usable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="TRANSACTION_ERROR")
