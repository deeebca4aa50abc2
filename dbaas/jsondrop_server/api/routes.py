"""
API routes for JSONDrop.

Every route under /databases/{database_id} authenticates with a
capability key taken from `Authorization: Bearer <key>` or `?key=`.
Read keys may read and subscribe; mutations need the write key.

Route order matters: fixed segments (events, schemas) are declared
before the generic /{collection} routes that would otherwise match them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..events import Listener, format_connected
from ..service import JsonDropService
from ..store import safe_identifier
from ..store.documents import DEFAULT_QUERY_LIMIT
from ..store.models import ResolvedTenant

logger = logging.getLogger(__name__)

router = APIRouter(tags=["JSONDrop"])

# Query parameters that are never treated as document filters
RESERVED_QUERY_PARAMS = frozenset({"key", "limit", "offset"})

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# --- Request Models ---


class CreateSchemaRequest(BaseModel):
    """Request to define a collection schema."""

    fields: dict[str, str] = Field(..., description="Field name -> string|number|bool")


class DocumentRequest(BaseModel):
    """Request body for insert and replace."""

    data: dict[str, Any] = Field(..., description="Document field values")


# --- Dependencies ---


def get_service(request: Request) -> JsonDropService:
    """Get the service from app state."""
    return request.app.state.service


def extract_key(request: Request) -> str | None:
    """Get the capability key from the Authorization header or ?key=."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.query_params.get("key")


async def read_access(
    database_id: str,
    request: Request,
    service: JsonDropService = Depends(get_service),
) -> ResolvedTenant:
    """Require a read or write key for the addressed tenant."""
    return await service.authenticate(extract_key(request), tenant_id=database_id)


async def write_access(
    database_id: str,
    request: Request,
    service: JsonDropService = Depends(get_service),
) -> ResolvedTenant:
    """Require the write key for the addressed tenant."""
    return await service.authenticate(
        extract_key(request), tenant_id=database_id, require_write=True
    )


def parse_filters(request: Request) -> dict[str, list[str]]:
    """Collect field filters from the query string.

    Repeated parameters and comma-separated values both add to the
    accepted values for a field.
    """
    filters: dict[str, list[str]] = {}
    for name, raw in request.query_params.multi_items():
        if name in RESERVED_QUERY_PARAMS:
            continue
        values = [part.strip() for part in raw.split(",") if part.strip()]
        if values:
            filters.setdefault(name, []).extend(values)
    return filters


def event_stream(
    service: JsonDropService, listener: Listener, request: Request
) -> StreamingResponse:
    """Build the SSE response for a registered listener."""
    logger.debug(
        "Opened event stream",
        extra={
            "tenant_id": listener.tenant_id,
            "collection": listener.collection,
            "listener_id": listener.listener_id,
        },
    )

    async def body() -> AsyncIterator[str]:
        yield format_connected(listener.tenant_id, listener.collection)
        async for chunk in service.broadcaster.stream(listener, request.is_disconnected):
            yield chunk

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)


# --- Tenant Routes ---


@router.post("/databases", status_code=201)
async def create_database(service: JsonDropService = Depends(get_service)):
    """
    Create a tenant.

    Returns the database id, write key and read key. The keys are
    shown only once.
    """
    creds = await service.catalog.create_tenant()
    return creds.to_dict()


@router.get("/databases/{database_id}")
async def get_database(
    database_id: str,
    auth: ResolvedTenant = Depends(read_access),
    service: JsonDropService = Depends(get_service),
):
    """Get quota usage and the defined collections of a tenant."""
    info = await service.catalog.info(database_id)
    schemas = await service.catalog.list_schemas(database_id)
    result = info.to_dict()
    result["collections"] = [schema.name for schema in schemas]
    return result


@router.delete("/databases/{database_id}", status_code=204)
async def delete_database(
    database_id: str,
    auth: ResolvedTenant = Depends(write_access),
    service: JsonDropService = Depends(get_service),
):
    """Delete a tenant and everything it stores."""
    await service.delete_tenant(database_id)
    return Response(status_code=204)


@router.get("/databases/{database_id}/events")
async def stream_database_events(
    database_id: str,
    request: Request,
    auth: ResolvedTenant = Depends(read_access),
    service: JsonDropService = Depends(get_service),
):
    """Stream every change of a tenant as Server-Sent Events."""
    listener = service.broadcaster.subscribe(database_id)
    return event_stream(service, listener, request)


# --- Schema Routes ---


@router.post("/databases/{database_id}/schemas/{name}", status_code=201)
async def create_schema(
    database_id: str,
    name: str,
    body: CreateSchemaRequest,
    auth: ResolvedTenant = Depends(write_access),
    service: JsonDropService = Depends(get_service),
):
    """Define a collection and its field types."""
    schema = await service.catalog.create_schema(database_id, name, body.fields)
    return schema.to_dict()


@router.get("/databases/{database_id}/schemas/{name}")
async def get_schema(
    database_id: str,
    name: str,
    auth: ResolvedTenant = Depends(read_access),
    service: JsonDropService = Depends(get_service),
):
    """Get a collection schema."""
    schema = await service.catalog.get_schema(database_id, name)
    return schema.to_dict()


@router.delete("/databases/{database_id}/schemas/{name}", status_code=204)
async def delete_schema(
    database_id: str,
    name: str,
    auth: ResolvedTenant = Depends(write_access),
    service: JsonDropService = Depends(get_service),
):
    """Drop a collection with all its documents."""
    await service.catalog.delete_schema(database_id, name)
    return Response(status_code=204)


# --- Collection Routes ---


@router.get("/databases/{database_id}/{collection}/events")
async def stream_collection_events(
    database_id: str,
    collection: str,
    request: Request,
    auth: ResolvedTenant = Depends(read_access),
    service: JsonDropService = Depends(get_service),
):
    """Stream the changes of one collection as Server-Sent Events."""
    safe_identifier(collection)
    listener = service.broadcaster.subscribe_collection(database_id, collection)
    return event_stream(service, listener, request)


@router.get("/databases/{database_id}/{collection}")
async def query_documents(
    database_id: str,
    collection: str,
    request: Request,
    limit: int = Query(DEFAULT_QUERY_LIMIT, description="Max documents (<= 0: no limit)"),
    offset: int = Query(0, ge=0, description="Matching documents to skip"),
    auth: ResolvedTenant = Depends(read_access),
    service: JsonDropService = Depends(get_service),
):
    """
    Query a collection, newest first.

    Any query parameter other than key, limit and offset filters on the
    field of that name, e.g. `?status=active,pending&age=30`.
    """
    docs = await service.documents.query(
        database_id,
        collection,
        limit=limit,
        offset=offset,
        filters=parse_filters(request),
    )
    return [doc.to_dict() for doc in docs]


@router.post("/databases/{database_id}/{collection}", status_code=201)
async def insert_document(
    database_id: str,
    collection: str,
    body: DocumentRequest,
    auth: ResolvedTenant = Depends(write_access),
    service: JsonDropService = Depends(get_service),
):
    """Insert a document. It must match the collection schema exactly."""
    doc = await service.documents.insert(database_id, collection, body.data)
    return doc.to_dict()


@router.get("/databases/{database_id}/{collection}/{doc_id}")
async def get_document(
    database_id: str,
    collection: str,
    doc_id: str,
    auth: ResolvedTenant = Depends(read_access),
    service: JsonDropService = Depends(get_service),
):
    """Get a single document by id."""
    doc = await service.documents.get(database_id, collection, doc_id)
    return doc.to_dict()


@router.put("/databases/{database_id}/{collection}/{doc_id}")
async def update_document(
    database_id: str,
    collection: str,
    doc_id: str,
    body: DocumentRequest,
    auth: ResolvedTenant = Depends(write_access),
    service: JsonDropService = Depends(get_service),
):
    """Replace a document's data."""
    doc = await service.documents.update(database_id, collection, doc_id, body.data)
    return doc.to_dict()


@router.delete("/databases/{database_id}/{collection}/{doc_id}", status_code=204)
async def delete_document(
    database_id: str,
    collection: str,
    doc_id: str,
    auth: ResolvedTenant = Depends(write_access),
    service: JsonDropService = Depends(get_service),
):
    """Delete a document."""
    await service.documents.delete(database_id, collection, doc_id)
    return Response(status_code=204)
