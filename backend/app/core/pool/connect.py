"""
PostgreSQL connection helpers for session pools.

Builds conninfo from ConnectionParams, opens a one-off probe connection to
validate credentials before a pool is built, classifies driver errors and
applies/resets statement_timeout on borrowed connections.
"""

import logging
from typing import Any

import psycopg
from psycopg.conninfo import make_conninfo

from app.core.config import settings
from app.core.errors import ConnectFailureReason, ConnectionFailed
from app.schemas_console import ConnectionParams

_log = logging.getLogger(__name__)

# SQLSTATE class 28: invalid authorization specification (28000, 28P01)
_AUTH_SQLSTATE_CLASS = "28"

_AUTH_MARKERS = (
    "password authentication failed",
    "authentication failed",
    "no pg_hba.conf entry",
    "password is required",
    "no password supplied",
)
_UNREACHABLE_MARKERS = (
    "connection refused",
    "could not translate host name",
    "name or service not known",
    "could not connect to server",
    "timeout expired",
    "no route to host",
    "network is unreachable",
    "connection timed out",
)


def application_name_for(session_id: str) -> str:
    """Per-session tag, e.g. ``rdb-web-console-1a2b3c4d``."""
    return f"{settings.APPLICATION_NAME}-{session_id[:8]}"


def build_conninfo(params: ConnectionParams, *, application_name: str) -> str:
    return make_conninfo(
        host=params.host,
        port=params.port,
        dbname=params.database,
        user=params.username,
        password=params.password,
        connect_timeout=settings.EXTERNAL_DB_CONNECT_TIMEOUT,
        application_name=application_name,
    )


def classify_connect_error(exc: BaseException) -> ConnectFailureReason:
    """Map a driver error raised while connecting to AUTH / UNREACHABLE / OTHER."""
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate and sqlstate.startswith(_AUTH_SQLSTATE_CLASS):
        return ConnectFailureReason.AUTH
    text = str(exc).lower()
    if any(m in text for m in _AUTH_MARKERS):
        return ConnectFailureReason.AUTH
    if isinstance(exc, OSError) or any(m in text for m in _UNREACHABLE_MARKERS):
        return ConnectFailureReason.UNREACHABLE
    return ConnectFailureReason.OTHER


async def probe_server(conninfo: str) -> str | None:
    """
    Open a direct connection, read ``SELECT version()`` and close it.

    Raises ConnectionFailed (with the driver message verbatim) when the server
    rejects the credentials or cannot be reached. The pool itself only reports
    a timeout on such failures, so this runs before the pool is opened.
    """
    try:
        conn = await psycopg.AsyncConnection.connect(conninfo, autocommit=True)
    except (psycopg.Error, OSError) as e:
        raise ConnectionFailed(str(e), reason=classify_connect_error(e)) from e
    try:
        cur = await conn.execute("SELECT version()")
        row = await cur.fetchone()
        return row[0] if row else None
    except psycopg.Error as e:
        raise ConnectionFailed(str(e), reason=classify_connect_error(e)) from e
    finally:
        await conn.close()


async def apply_statement_timeout(conn: Any, timeout_ms: int) -> None:
    """Session-level statement_timeout in ms; set_config accepts a bound value."""
    await conn.execute(
        "SELECT set_config('statement_timeout', %s, false)", (str(int(timeout_ms)),)
    )


async def reset_statement_timeout(conn: Any) -> None:
    """RESET statement_timeout; failures are logged and swallowed (best-effort)."""
    try:
        await conn.execute("RESET statement_timeout")
    except Exception:
        _log.warning("Failed to reset statement_timeout", exc_info=True)
