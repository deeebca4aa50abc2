"""
Unit tests for SSE formatting.
"""

import json

from dbaas.jsondrop_server.events import (
    DeleteEvent,
    InsertEvent,
    SchemaDeletedEvent,
    format_connected,
    format_ping,
    format_sse,
)


class TestFormatting:
    """Tests for the SSE wire format."""

    def test_insert_event(self):
        event = InsertEvent("db_x", "users", "doc_1", snapshot={"name": "Alice"}, timestamp=5)

        assert format_sse(event) == (
            "event: change\n"
            'data: {"event_type":"insert","database_id":"db_x","collection":"users",'
            '"document_id":"doc_1","timestamp":5,"data":{"name":"Alice"}}\n\n'
        )

    def test_delete_event_has_no_data(self):
        payload = json.loads(format_sse(DeleteEvent("db_x", "users", "doc_1")).split("data: ", 1)[1])

        assert payload["event_type"] == "delete"
        assert "data" not in payload

    def test_schema_event_has_empty_document_id(self):
        payload = json.loads(format_sse(SchemaDeletedEvent("db_x", "users")).split("data: ", 1)[1])

        assert payload["document_id"] == ""
        assert payload["data"] == {"schema_name": "users"}

    def test_ping(self):
        assert format_ping() == ": ping\n\n"

    def test_connected(self):
        chunk = format_connected("db_x", "users")

        assert chunk.startswith("event: connected\ndata: ")
        assert chunk.endswith("\n\n")
        payload = json.loads(chunk.split("data: ", 1)[1])
        assert payload["database_id"] == "db_x"
        assert payload["collection"] == "users"

    def test_connected_without_collection(self):
        payload = json.loads(format_connected("db_x").split("data: ", 1)[1])
        assert "collection" not in payload
