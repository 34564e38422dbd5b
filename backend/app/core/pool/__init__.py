"""
Per-session PostgreSQL connection pools.

psycopg (v3) opens the connections, psycopg_pool bounds and recycles them;
PoolRegistry maps the session cookie to exactly one pool.
"""

from .connect import (
    apply_statement_timeout,
    build_conninfo,
    classify_connect_error,
    probe_server,
    reset_statement_timeout,
)
from .health import ProbeResult, probe
from .manager import PoolRegistry, SessionInfo, parse_connection_params

__all__ = [
    "apply_statement_timeout",
    "build_conninfo",
    "classify_connect_error",
    "probe_server",
    "reset_statement_timeout",
    "ProbeResult",
    "probe",
    "PoolRegistry",
    "SessionInfo",
    "parse_connection_params",
]
