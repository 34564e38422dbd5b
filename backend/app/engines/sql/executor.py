"""
Execute one ad-hoc SQL statement for a console session.

Flow: registry.get(session) -> pool.getconn -> statement_timeout -> execute
-> fetch at most max_rows -> JSON-safe conversion -> size cap -> putconn.

Trust boundary: the SQL text is sent to the server exactly as the user typed
it. Nothing here parses, filters or rewrites statements; whatever the session's
database role may do, the console may do. Integrators who need restrictions
must enforce them with database privileges (a read-only role, row level
security), not in this layer. Internal callers that need values in a
statement (see catalog.py) pass them as bound ``params``.

When the text holds several statements (no params), the last result set is
returned, like psql shows the last command's output.
"""

import logging
import time
from typing import Any

import psycopg
from psycopg import sql as pgsql
from psycopg.rows import dict_row
from psycopg_pool import PoolClosed, PoolTimeout

from app.core.config import settings
from app.core.errors import (
    AcquireTimeout,
    EmptyQuery,
    NoActiveConnection,
    QueryFailed,
    ResultTooLarge,
)
from app.core.pool import PoolRegistry, apply_statement_timeout, reset_statement_timeout
from app.schemas_console import QueryOptions, QueryResult

from .result import command_of, describe_fields, estimate_size, rows_to_json_safe

_log = logging.getLogger(__name__)

_LOG_PREVIEW_CHARS = 200

Statement = str | pgsql.Composable


def _is_empty(statement: Statement | None) -> bool:
    if statement is None:
        return True
    return isinstance(statement, str) and not statement.strip()


def _preview(statement: Statement) -> str:
    text = statement if isinstance(statement, str) else repr(statement)
    text = " ".join(text.split())
    if len(text) > _LOG_PREVIEW_CHARS:
        return text[:_LOG_PREVIEW_CHARS] + "..."
    return text


async def execute_sql(
    registry: PoolRegistry,
    session_id: str | None,
    sql: Statement | None,
    options: QueryOptions | None = None,
    *,
    params: dict[str, Any] | list[Any] | tuple[Any, ...] | None = None,
) -> QueryResult:
    """
    Run *sql* on a connection borrowed from the session's pool.

    Raises EmptyQuery, NoActiveConnection (no pool; nothing is sent to the
    database), AcquireTimeout, QueryFailed (driver message verbatim) or
    ResultTooLarge. The connection goes back to the pool on every path.
    """
    opts = options or QueryOptions()
    if _is_empty(sql):
        raise EmptyQuery()

    pool = registry.get(session_id)
    if pool is None:
        raise NoActiveConnection()

    timeout_ms = (
        opts.timeout_ms
        if opts.timeout_ms is not None
        else settings.EXTERNAL_DB_STATEMENT_TIMEOUT * 1000
    )
    max_rows = opts.max_rows or settings.QUERY_MAX_ROWS
    max_bytes = opts.max_result_bytes or settings.QUERY_MAX_RESULT_BYTES
    log_query = settings.QUERY_LOG_SQL if opts.log_query is None else opts.log_query
    if log_query:
        _log.info("[query] session %s: %s", (session_id or "")[:8], _preview(sql))

    try:
        conn = await pool.getconn(timeout=settings.EXTERNAL_DB_ACQUIRE_TIMEOUT)
    except PoolTimeout as e:
        raise AcquireTimeout(str(e)) from e
    except PoolClosed as e:
        # Pool torn down between lookup and checkout (disconnect or fatal error)
        raise NoActiveConnection(str(e)) from e

    try:
        return await _run_on_connection(
            conn,
            sql,
            params,
            timeout_ms=timeout_ms,
            max_rows=max_rows,
            max_bytes=max_bytes,
        )
    finally:
        await pool.putconn(conn)


async def _run_on_connection(
    conn: Any,
    sql: Statement,
    params: Any,
    *,
    timeout_ms: int,
    max_rows: int,
    max_bytes: int,
) -> QueryResult:
    try:
        if timeout_ms > 0:
            await apply_statement_timeout(conn, timeout_ms)
        async with conn.cursor(row_factory=dict_row) as cur:
            started = time.perf_counter()
            await cur.execute(sql, params)
            elapsed_ms = (time.perf_counter() - started) * 1000
            while cur.nextset():
                pass
            fields = describe_fields(cur)
            has_rows = bool(cur.description)
            rows = await cur.fetchmany(max_rows) if has_rows else []
            row_count = cur.rowcount
            if row_count is None or row_count < 0:
                row_count = len(rows)
            truncated = has_rows and row_count > len(rows)
            command = command_of(cur.statusmessage)
    except psycopg.Error as e:
        raise QueryFailed(str(e), sqlstate=e.sqlstate) from e
    finally:
        if timeout_ms > 0:
            await reset_statement_timeout(conn)

    result = QueryResult(
        rows=rows_to_json_safe(rows),
        fields=fields,
        row_count=row_count,
        command=command,
        execution_time=round(elapsed_ms, 3),
        truncated=truncated,
    )
    size = estimate_size(result.model_dump(mode="json"))
    if size > max_bytes:
        raise ResultTooLarge(size, max_bytes)
    return result
