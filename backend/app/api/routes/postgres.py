"""
Console API: connect / disconnect / check / query, plus schema browsing.

The session id lives in an HttpOnly cookie; every handler resolves its pool
through the registry. Errors are ConsoleError subclasses rendered by the
handler in app.main as { success: false, message, error }.
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from app.api.deps import RegistryDep, SessionIdDep, no_cache
from app.core.config import settings
from app.core.errors import InvalidParameters, NoActiveConnection
from app.core.pool import PoolRegistry, ProbeResult, probe
from app.core.session_cookie import clear_session_cookie, set_session_cookie
from app.engines.sql import (
    execute_sql,
    get_database_info,
    get_table_columns,
    get_table_indexes,
    get_table_row_count,
    list_tables,
)
from app.schemas_console import (
    ConnectDetails,
    ConnectResponse,
    DatabaseInfoOut,
    Message,
    QueryIn,
    QueryResponse,
    TableDetailOut,
    TableListOut,
)

_log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/postgres", tags=["postgres"], dependencies=[Depends(no_cache)]
)


def _details(registry: PoolRegistry, session_id: str) -> ConnectDetails | None:
    info = registry.info(session_id)
    if info is None:
        return None
    return ConnectDetails(
        server_version=info.server_version,
        connected_at=info.connected_at,
        timeout=settings.SESSION_COOKIE_MAX_AGE,
    )


def _require_pool(registry: PoolRegistry, session_id: str | None) -> str:
    if not session_id:
        raise NoActiveConnection(message="Session not found. Please log in again.")
    if registry.get(session_id) is None:
        raise NoActiveConnection()
    return session_id


@router.post("/connect", response_model=ConnectResponse)
async def connect(
    request: Request,
    response: Response,
    registry: RegistryDep,
    session_id: SessionIdDep,
) -> Any:
    """
    Open (or reuse) the pool for this browser session and set the cookie.

    A cookie session id is kept only if the registry knows it; otherwise a new
    one is minted, so clients cannot pick their own ids. The body is read raw
    so any malformed input is answered by InvalidParameters (400).
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidParameters("Request body must be a JSON object") from e
    if not session_id or session_id not in registry:
        session_id = str(uuid.uuid4())
    await registry.create_or_replace(session_id, body)
    set_session_cookie(response, session_id)
    _log.info("[connect] Session %s... connected", session_id[:8])
    return ConnectResponse(
        message="Connected to the database",
        session_id=session_id,
        details=_details(registry, session_id),
    )


@router.delete("/connect", response_model=Message)
async def disconnect(
    response: Response, registry: RegistryDep, session_id: SessionIdDep
) -> Any:
    """Close the session's pool (no-op without one) and clear the cookie."""
    clear_session_cookie(response)
    if not session_id:
        return Message(message="Connection already closed")
    await registry.destroy(session_id)
    _log.info("[connect] Session %s... disconnected", session_id[:8])
    return Message(message="Connection closed")


@router.get("/check", response_model=ConnectResponse)
async def check(
    response: Response, registry: RegistryDep, session_id: SessionIdDep
) -> Any:
    """Probe the session's pool; a dead pool is dropped and answered with 401."""
    session_id = _require_pool(registry, session_id)
    pool = registry.get(session_id)
    if await probe(pool) is ProbeResult.DEAD:
        await registry.destroy(session_id, expected_pool=pool)
        raise NoActiveConnection(message="Database connection was lost. Please log in again.")
    set_session_cookie(response, session_id)
    return ConnectResponse(
        message="Connection is valid",
        session_id=session_id,
        details=_details(registry, session_id),
    )


@router.post("/query", response_model=QueryResponse)
async def query(
    body: QueryIn, registry: RegistryDep, session_id: SessionIdDep
) -> Any:
    """Run one ad-hoc statement. A failed query never clears the session."""
    session_id = _require_pool(registry, session_id)
    results = await execute_sql(registry, session_id, body.query)
    return QueryResponse(results=results)


@router.get("/tables", response_model=TableListOut)
async def tables(
    registry: RegistryDep, session_id: SessionIdDep, schema: str = "public"
) -> Any:
    session_id = _require_pool(registry, session_id)
    return TableListOut(tables=await list_tables(registry, session_id, schema))


@router.get("/tables/{table}", response_model=TableDetailOut)
async def table_detail(
    table: str,
    registry: RegistryDep,
    session_id: SessionIdDep,
    schema: str = "public",
) -> Any:
    """Columns, indexes and row count of one table."""
    session_id = _require_pool(registry, session_id)
    columns = await get_table_columns(registry, session_id, table, schema)
    indexes = await get_table_indexes(registry, session_id, table, schema)
    row_count = await get_table_row_count(registry, session_id, table, schema)
    return TableDetailOut(
        name=table, columns=columns, indexes=indexes, row_count=row_count
    )


@router.get("/info", response_model=DatabaseInfoOut)
async def info(registry: RegistryDep, session_id: SessionIdDep) -> Any:
    session_id = _require_pool(registry, session_id)
    data = await get_database_info(registry, session_id)
    return DatabaseInfoOut(**data)
