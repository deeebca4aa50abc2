"""
Change event types.

Each kind of change is its own frozen dataclass so subscribers can
dispatch on type instead of comparing strings. All events share the
tenant id, collection and timestamp; document events add the document
id, and every kind except delete carries a data snapshot.

Invariants:
    - Events are immutable once created
    - DeleteEvent never carries data
    - Schema events have an empty document_id
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Protocol, runtime_checkable


class EventKind(Enum):
    """Wire names of the change event kinds."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SCHEMA_CREATED = "schema_created"
    SCHEMA_DELETED = "schema_deleted"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ChangeEvent:
    """Base class for all change events.

    Attributes:
        tenant_id: Tenant the change belongs to
        collection: Collection (or schema) name
        timestamp: When the change was committed (Unix ms)
    """

    kind: ClassVar[EventKind]

    tenant_id: str
    collection: str
    timestamp: int = field(default_factory=_now_ms, kw_only=True)

    @property
    def document_id(self) -> str:
        return ""

    @property
    def data(self) -> dict[str, Any] | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape sent to subscribers."""
        payload: dict[str, Any] = {
            "event_type": self.kind.value,
            "database_id": self.tenant_id,
            "collection": self.collection,
            "document_id": self.document_id,
            "timestamp": self.timestamp,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class _DocumentEvent(ChangeEvent):
    doc_id: str

    @property
    def document_id(self) -> str:
        return self.doc_id


@dataclass(frozen=True)
class InsertEvent(_DocumentEvent):
    """A document was inserted."""

    kind: ClassVar[EventKind] = EventKind.INSERT

    snapshot: dict[str, Any]

    @property
    def data(self) -> dict[str, Any] | None:
        return self.snapshot


@dataclass(frozen=True)
class UpdateEvent(_DocumentEvent):
    """A document was replaced."""

    kind: ClassVar[EventKind] = EventKind.UPDATE

    snapshot: dict[str, Any]

    @property
    def data(self) -> dict[str, Any] | None:
        return self.snapshot


@dataclass(frozen=True)
class DeleteEvent(_DocumentEvent):
    """A document was deleted."""

    kind: ClassVar[EventKind] = EventKind.DELETE


@dataclass(frozen=True)
class SchemaCreatedEvent(ChangeEvent):
    """A collection schema was defined."""

    kind: ClassVar[EventKind] = EventKind.SCHEMA_CREATED

    fields: dict[str, str]

    @property
    def data(self) -> dict[str, Any] | None:
        return {"schema_name": self.collection, "fields": dict(self.fields)}


@dataclass(frozen=True)
class SchemaDeletedEvent(ChangeEvent):
    """A collection schema and all its documents were dropped."""

    kind: ClassVar[EventKind] = EventKind.SCHEMA_DELETED

    @property
    def data(self) -> dict[str, Any] | None:
        return {"schema_name": self.collection}


@runtime_checkable
class EventPublisher(Protocol):
    """Anything that accepts change events. Must never raise or block."""

    def publish(self, event: ChangeEvent) -> None: ...
