"""
Data model for tenants, schemas and documents.

Timestamps are Unix milliseconds throughout. Documents carry their field
values as a plain dict; their serialized JSON form is what is stored and
what is charged against the tenant quota.

Invariants:
    - Schemas have at least one field and only string/number/bool types
    - A valid document has exactly the fields its schema declares
    - serialize_data is deterministic for a given dict
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import ValidationFailedError


class FieldType(Enum):
    """Supported field types in collection schemas."""

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"

    @classmethod
    def from_str(cls, value: str) -> FieldType:
        """Convert string representation to FieldType.

        Raises:
            ValidationFailedError: If value is not a valid field type
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValidationFailedError(f"Invalid field type '{value}'. Valid types: {valid}")


class Capability(Enum):
    """Access granted by a capability key."""

    READ = "read"
    WRITE = "write"


@dataclass
class Tenant:
    """A tenant record from the catalog.

    Attributes:
        tenant_id: Opaque tenant identifier (db_ prefix)
        write_key: Full-access capability key
        read_key: Read/subscribe-only capability key
        created_at: Creation timestamp (Unix ms)
        last_accessed: Last authenticated access (Unix ms)
        quota_used: Bytes currently charged
        quota_limit: Maximum chargeable bytes
    """

    tenant_id: str
    write_key: str = field(repr=False)
    read_key: str = field(repr=False)
    created_at: int
    last_accessed: int
    quota_used: int
    quota_limit: int


@dataclass(frozen=True)
class ResolvedTenant:
    """Result of resolving a capability key."""

    tenant: Tenant
    capability: Capability

    @property
    def can_write(self) -> bool:
        return self.capability is Capability.WRITE


@dataclass(frozen=True)
class TenantCredentials:
    """Returned once, at tenant creation. The only time keys leave the server."""

    tenant_id: str
    write_key: str
    read_key: str

    def to_dict(self) -> dict[str, str]:
        return {
            "database_id": self.tenant_id,
            "write_key": self.write_key,
            "read_key": self.read_key,
        }


@dataclass(frozen=True)
class TenantInfo:
    """Quota and usage summary for a tenant."""

    tenant_id: str
    quota_used: int
    quota_limit: int
    created_at: int
    last_accessed: int

    @property
    def quota_percent(self) -> float:
        if self.quota_limit <= 0:
            return 0.0
        return self.quota_used / self.quota_limit * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "database_id": self.tenant_id,
            "quota_used": self.quota_used,
            "quota_limit": self.quota_limit,
            "quota_percent": self.quota_percent,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
        }


@dataclass
class Schema:
    """A collection schema.

    Attributes:
        tenant_id: Owning tenant
        name: Collection name (validated identifier)
        fields: Mapping of field name to type
        created_at: Creation timestamp (Unix ms)
    """

    tenant_id: str
    name: str
    fields: dict[str, FieldType]
    created_at: int

    def fields_to_dict(self) -> dict[str, str]:
        return {name: kind.value for name, kind in self.fields.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "database_id": self.tenant_id,
            "name": self.name,
            "fields": self.fields_to_dict(),
            "created_at": self.created_at,
        }


@dataclass
class Document:
    """A stored document.

    Attributes:
        doc_id: Unique document identifier (doc_ prefix)
        collection: Collection name
        data: Field values
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    doc_id: str
    collection: str
    data: dict[str, Any]
    created_at: int
    updated_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.doc_id,
            "collection": self.collection,
            "data": self.data,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def parse_fields(fields: dict[str, Any]) -> dict[str, FieldType]:
    """Parse a raw field mapping into FieldType values.

    Accepts either FieldType members or their string values.

    Raises:
        ValidationFailedError: If the mapping is empty, a field name is
            empty or a field type is unknown
    """
    if not fields:
        raise ValidationFailedError("Schema must have at least one field")

    parsed: dict[str, FieldType] = {}
    for name, kind in fields.items():
        if not name:
            raise ValidationFailedError("Field name cannot be empty")
        if isinstance(kind, FieldType):
            parsed[name] = kind
        elif isinstance(kind, str):
            try:
                parsed[name] = FieldType.from_str(kind)
            except ValidationFailedError as e:
                raise ValidationFailedError(
                    f"invalid field type for {name}: {kind}", field_name=name
                ) from e
        else:
            raise ValidationFailedError(
                f"invalid field type for {name}: {kind!r}", field_name=name
            )
    return parsed


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def validate_document(data: dict[str, Any], schema: Schema) -> None:
    """Validate a document's data against its schema.

    Every field in data must be declared with a matching type and every
    declared field must be present. There are no optional fields.

    Raises:
        ValidationFailedError: On the first mismatch found
    """
    if not isinstance(data, dict) or not data:
        raise ValidationFailedError("Document data cannot be empty")

    for name, value in data.items():
        kind = schema.fields.get(name)
        if kind is None:
            raise ValidationFailedError(
                f"field '{name}' is not defined in schema", field_name=name
            )

        if kind is FieldType.STRING:
            ok = isinstance(value, str)
        elif kind is FieldType.NUMBER:
            ok = _is_number(value)
        else:
            ok = isinstance(value, bool)

        if not ok:
            raise ValidationFailedError(
                f"field '{name}' must be a {kind.value}, got {type(value).__name__}",
                field_name=name,
            )

    for name in schema.fields:
        if name not in data:
            raise ValidationFailedError(
                f"required field '{name}' is missing", field_name=name
            )


def serialize_data(data: dict[str, Any]) -> str:
    """Serialize document data to its stored (and quota-charged) form."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def data_size(serialized: str) -> int:
    """Size of a serialized document in bytes."""
    return len(serialized.encode("utf-8"))


_TRUE_STRINGS = frozenset({"1", "t", "T", "true", "TRUE", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "false", "FALSE", "False"})


def matches_filter_value(kind: FieldType, value: Any, wanted: Any) -> bool:
    """Compare a stored field value to one filter value by schema type.

    Filter values usually arrive as strings from a query string; they are
    parsed as the field's declared type. Unparseable values never match.
    """
    if kind is FieldType.STRING:
        return isinstance(value, str) and value == str(wanted)

    if kind is FieldType.NUMBER:
        if not _is_number(value):
            return False
        if _is_number(wanted):
            return float(value) == float(wanted)
        try:
            return float(value) == float(str(wanted).strip())
        except ValueError:
            return False

    if not isinstance(value, bool):
        return False
    if isinstance(wanted, bool):
        return value is wanted
    text = str(wanted).strip()
    if text in _TRUE_STRINGS:
        return value is True
    if text in _FALSE_STRINGS:
        return value is False
    return False
