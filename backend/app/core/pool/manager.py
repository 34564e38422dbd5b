"""
Session-scoped connection pool registry.

One AsyncConnectionPool per browser session, keyed by the opaque session id
from the cookie. Mutations are serialized per session with an asyncio.Lock,
so concurrent connects for the same session never register two pools. An
existing pool is reused on reconnect when the credentials match and it passes
the liveness probe; otherwise it is torn down and replaced.

Fatal pool errors (psycopg_pool giving up on reconnecting) go through the
same ``destroy`` path as an explicit disconnect; the next connect recreates
the pool.

The registry is built once in the application lifespan and handed to routes
through a dependency (see app.api.deps.get_registry).
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, NamedTuple

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import (
    ConnectFailureReason,
    ConnectionFailed,
    InvalidParameters,
    TeardownError,
)
from app.schemas_console import ConnectionParams

from .connect import (
    application_name_for,
    build_conninfo,
    classify_connect_error,
    probe_server,
)
from .health import ProbeResult, probe

_log = logging.getLogger(__name__)

PoolFactory = Callable[..., Any]
ServerProbe = Callable[[str], Awaitable[str | None]]


class _PoolEntry(NamedTuple):
    pool: Any
    fingerprint: str
    connected_at: datetime
    server_version: str | None


class SessionInfo(NamedTuple):
    session_id: str
    connected_at: datetime
    server_version: str | None


def _short(session_id: str) -> str:
    return f"{session_id[:8]}..."


def parse_connection_params(params: ConnectionParams | Mapping[str, Any]) -> ConnectionParams:
    """Validate raw connect input; InvalidParameters names the offending fields."""
    if isinstance(params, ConnectionParams):
        return params
    if not isinstance(params, Mapping):
        raise InvalidParameters("Connection parameters must be an object")
    try:
        return ConnectionParams.model_validate(dict(params))
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise InvalidParameters(
            "Missing or invalid connection parameters: " + ", ".join(fields)
        ) from e


def default_pool_factory(
    conninfo: str,
    *,
    session_id: str,
    reconnect_failed: Callable[[Any], None],
) -> AsyncConnectionPool:
    return AsyncConnectionPool(
        conninfo,
        kwargs={"autocommit": True},
        min_size=settings.EXTERNAL_DB_POOL_MIN_SIZE,
        max_size=settings.EXTERNAL_DB_POOL_SIZE,
        max_idle=settings.EXTERNAL_DB_POOL_IDLE_TIMEOUT,
        timeout=settings.EXTERNAL_DB_ACQUIRE_TIMEOUT,
        reconnect_timeout=settings.EXTERNAL_DB_POOL_RECONNECT_TIMEOUT,
        reconnect_failed=reconnect_failed,
        check=AsyncConnectionPool.check_connection,
        name=f"session-{session_id[:8]}",
        open=False,
    )


class PoolRegistry:
    """Session id -> connection pool, with probe-gated reuse and leak-free teardown."""

    def __init__(
        self,
        *,
        pool_factory: PoolFactory | None = None,
        server_probe: ServerProbe | None = None,
    ) -> None:
        self._entries: dict[str, _PoolEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_refs: dict[str, int] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._pool_factory = pool_factory or default_pool_factory
        self._server_probe = server_probe or probe_server

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_or_replace(
        self, session_id: str, params: ConnectionParams | Mapping[str, Any]
    ) -> Any:
        """
        Return a live pool for *session_id* built from *params*.

        Reuses the registered pool when it was built for the same parameters and
        answers the probe; tears it down otherwise. Raises InvalidParameters
        before any I/O, ConnectionFailed when the server cannot be used.
        """
        conn_params = parse_connection_params(params)
        fingerprint = conn_params.fingerprint()

        async with self._session_lock(session_id):
            entry = self._entries.get(session_id)
            if entry is not None:
                if entry.fingerprint == fingerprint:
                    if await probe(entry.pool) is ProbeResult.ALIVE:
                        _log.info("Reusing pool for session %s", _short(session_id))
                        return entry.pool
                    _log.warning(
                        "Pool for session %s failed probe, recreating",
                        _short(session_id),
                    )
                else:
                    _log.info(
                        "Connection parameters changed for session %s, replacing pool",
                        _short(session_id),
                    )
                await self._teardown(session_id, entry)

            entry = await self._build(session_id, conn_params, fingerprint)
            self._entries[session_id] = entry
            _log.info("Registered pool for session %s", _short(session_id))
            return entry.pool

    def get(self, session_id: str | None) -> Any | None:
        """Pool for *session_id* or None. No side effects."""
        if not session_id:
            return None
        entry = self._entries.get(session_id)
        return entry.pool if entry is not None else None

    def info(self, session_id: str | None) -> SessionInfo | None:
        if not session_id:
            return None
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        return SessionInfo(session_id, entry.connected_at, entry.server_version)

    async def destroy(self, session_id: str, *, expected_pool: Any | None = None) -> None:
        """
        Close the session's pool and drop the entry. Idempotent.

        expected_pool: only tear down if the registered pool is still this one
        (a background error on a pool that was already replaced is ignored).
        """
        async with self._session_lock(session_id):
            entry = self._entries.get(session_id)
            if entry is None:
                _log.debug("No pool to close for session %s", _short(session_id))
                return
            if expected_pool is not None and entry.pool is not expected_pool:
                return
            await self._teardown(session_id, entry)

    async def destroy_all(self) -> list[TeardownError]:
        """
        Close every pool concurrently (shutdown). Failures are logged per pool
        and returned, never raised.
        """
        entries = list(self._entries.items())
        self._entries.clear()
        results = await asyncio.gather(
            *(self._close_pool(sid, e.pool) for sid, e in entries),
            return_exceptions=True,
        )
        failures = [
            r if isinstance(r, TeardownError) else TeardownError(sid, r)
            for (sid, _), r in zip(entries, results)
            if r is not None
        ]
        _log.info(
            "All pools closed (%d), %d failed. Remaining pools: %d",
            len(entries),
            len(failures),
            len(self._entries),
        )
        return failures

    def stats(self) -> dict[str, Any]:
        """Registry statistics for monitoring."""
        pools: dict[str, Any] = {}
        for sid, entry in self._entries.items():
            get_stats = getattr(entry.pool, "get_stats", None)
            pools[sid[:8]] = get_stats() if callable(get_stats) else {}
        return {"sessions": len(self._entries), "pools": pools}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        # Ref-counted so the lock is dropped once no task holds or waits on it
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_refs[session_id] = self._lock_refs.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            n = self._lock_refs[session_id] - 1
            if n:
                self._lock_refs[session_id] = n
            else:
                del self._lock_refs[session_id]
                self._locks.pop(session_id, None)

    async def _build(
        self, session_id: str, params: ConnectionParams, fingerprint: str
    ) -> _PoolEntry:
        conninfo = build_conninfo(params, application_name=application_name_for(session_id))
        server_version = await self._server_probe(conninfo)

        _log.info("Creating pool for session %s", _short(session_id))
        pool = self._pool_factory(
            conninfo,
            session_id=session_id,
            reconnect_failed=self._fatal_error_handler(session_id),
        )
        ok = False
        try:
            await pool.open(wait=True, timeout=float(settings.EXTERNAL_DB_CONNECT_TIMEOUT))
            if await probe(pool) is ProbeResult.DEAD:
                raise ConnectionFailed(
                    "New connection pool failed the liveness probe",
                    reason=ConnectFailureReason.UNREACHABLE,
                )
            ok = True
        except (PoolTimeout, psycopg.Error, OSError) as e:
            raise ConnectionFailed(str(e), reason=classify_connect_error(e)) from e
        finally:
            if not ok:
                await self._close_pool(session_id, pool)

        return _PoolEntry(
            pool=pool,
            fingerprint=fingerprint,
            connected_at=datetime.now(timezone.utc),
            server_version=server_version,
        )

    async def _teardown(self, session_id: str, entry: _PoolEntry) -> None:
        # Entry goes first so get() stops handing out the pool while it closes
        if self._entries.get(session_id) is entry:
            del self._entries[session_id]
        await self._close_pool(session_id, entry.pool)

    async def _close_pool(self, session_id: str, pool: Any) -> TeardownError | None:
        _log.info("Closing pool for session %s", _short(session_id))
        try:
            await pool.close()
            return None
        except Exception as e:
            _log.error(
                "Error closing pool for session %s: %s",
                _short(session_id),
                e,
                exc_info=True,
            )
            return TeardownError(session_id, e)

    def _fatal_error_handler(self, session_id: str) -> Callable[[Any], None]:
        """Callback for psycopg_pool's reconnect_failed; schedules destroy on the loop."""
        loop = asyncio.get_running_loop()

        def _on_reconnect_failed(pool: Any) -> None:
            _log.error(
                "Pool for session %s could not reconnect, dropping it", _short(session_id)
            )
            loop.call_soon_threadsafe(self._spawn_destroy, session_id, pool)

        return _on_reconnect_failed

    def _spawn_destroy(self, session_id: str, pool: Any) -> None:
        task = asyncio.ensure_future(self.destroy(session_id, expected_pool=pool))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
