"""
Error types for JSONDrop Server.

Every failure surfaced by the core is a JsonDropError carrying a stable
code and a human readable message. The HTTP adapter maps codes to
status codes; nothing else inspects message text.

Invariants:
    - All errors inherit from JsonDropError
    - code values are stable and part of the wire contract
    - Messages never contain capability keys
"""

from __future__ import annotations

from typing import Any


class JsonDropError(Exception):
    """Base exception for all JSONDrop errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "JSONDROP_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the (error, message) wire pair."""
        return {"error": self.code, "message": self.message}


class ValidationFailedError(JsonDropError):
    """Input does not conform to a schema or to naming rules.

    Raised when:
    - A document field is missing, undeclared or has the wrong type
    - A schema has no fields or an unknown field type
    """

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, field_name: str | None = None) -> None:
        super().__init__(message, details={"field": field_name})
        self.field_name = field_name


class InvalidIdentifierError(ValidationFailedError):
    """Collection or schema name is not a safe SQL identifier."""

    code = "INVALID_IDENTIFIER"

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.details = {"identifier": identifier}


class NotFoundError(JsonDropError):
    """Requested tenant, schema or document does not exist."""

    code = "NOT_FOUND"


class TenantNotFoundError(NotFoundError):
    """Tenant does not exist (or the key does not resolve)."""

    pass


class SchemaNotFoundError(NotFoundError):
    """No schema is defined for the collection."""

    def __init__(self, collection: str) -> None:
        super().__init__(
            f"Schema does not exist for collection: {collection}",
            details={"collection": collection},
        )
        self.collection = collection


class DocumentNotFoundError(NotFoundError):
    """Document does not exist in the collection."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(
            f"Document not found: {doc_id}",
            details={"collection": collection, "document_id": doc_id},
        )
        self.collection = collection
        self.doc_id = doc_id


class AlreadyExistsError(JsonDropError):
    """Schema with the same name already exists for the tenant."""

    code = "ALREADY_EXISTS"


class QuotaExceededError(JsonDropError):
    """Write would push the tenant past its storage quota."""

    code = "QUOTA_EXCEEDED"

    def __init__(self, used: int, limit: int, requested: int) -> None:
        super().__init__(
            f"quota exceeded: current {used} bytes, limit {limit} bytes, "
            f"attempted to add {requested} bytes",
            details={"quota_used": used, "quota_limit": limit, "requested": requested},
        )
        self.used = used
        self.limit = limit
        self.requested = requested


class GenerationFailureError(JsonDropError):
    """Identifier generation or uniqueness check failed. Safe to retry."""

    code = "GENERATION_FAILURE"


class StorageFailureError(JsonDropError):
    """Underlying SQLite or filesystem operation failed."""

    code = "STORAGE_FAILURE"


class AuthenticationError(JsonDropError):
    """Capability key is missing, malformed or unknown."""

    code = "UNAUTHORIZED"


class PermissionDeniedError(JsonDropError):
    """Key is valid but does not grant the requested access.

    Raised when:
    - A read key is used for a mutation
    - The key belongs to a different tenant than the one addressed
    """

    code = "FORBIDDEN"
