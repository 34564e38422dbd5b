"""
Normalize a psycopg result into a transport-safe QueryResult.

- make_json_safe: recursive conversion of driver values to JSON primitives.
- describe_fields: column descriptors (name, type oid, table oid).
- estimate_size: bytes of the serialized payload, for the result size cap.
"""

import ipaddress
import json
import logging
import math
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from psycopg.types.range import Range

from app.schemas_console import FieldDescriptor

_log = logging.getLogger(__name__)

_IP_TYPES = (
    ipaddress.IPv4Address,
    ipaddress.IPv6Address,
    ipaddress.IPv4Network,
    ipaddress.IPv6Network,
    ipaddress.IPv4Interface,
    ipaddress.IPv6Interface,
)


def make_json_safe(obj: Any, fallbacks: set[str] | None = None) -> Any:
    """Recursively convert non-JSON-serializable values to safe primitives.

    datetime/date/time -> ISO-8601, timedelta -> seconds, Decimal -> str (no
    precision loss), bytes -> Postgres hex form (``\\x...``), NaN/Infinity -> str.
    Anything else falls back to ``str()``; the type name is added to
    *fallbacks* (or logged right away when no set is given).
    """
    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else str(obj)
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(obj).hex()
    if isinstance(obj, dict):
        return {str(k): make_json_safe(v, fallbacks) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [make_json_safe(item, fallbacks) for item in obj]
    if isinstance(obj, (set, frozenset)):
        return [make_json_safe(item, fallbacks) for item in sorted(obj, key=str)]
    if isinstance(obj, _IP_TYPES) or isinstance(obj, Range):
        return str(obj)
    type_name = type(obj).__name__
    if fallbacks is None:
        _log.warning("Value of type %s is not JSON serializable; using str()", type_name)
    else:
        fallbacks.add(type_name)
    return str(obj)


def rows_to_json_safe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """make_json_safe over a row list, with one warning per batch for str() fallbacks."""
    fallbacks: set[str] = set()
    out = [make_json_safe(row, fallbacks) for row in rows]
    if fallbacks:
        _log.warning(
            "Converted values of non-serializable type(s) %s with str()",
            ", ".join(sorted(fallbacks)),
        )
    return out


def describe_fields(cursor: Any) -> list[FieldDescriptor]:
    desc = cursor.description
    if not desc:
        return []
    pgresult = getattr(cursor, "pgresult", None)
    fields: list[FieldDescriptor] = []
    for i, col in enumerate(desc):
        table_id = pgresult.ftable(i) if pgresult is not None else None
        fields.append(
            FieldDescriptor(name=col.name, data_type_id=col.type_code, table_id=table_id)
        )
    return fields


def command_of(statusmessage: str | None) -> str:
    """Command tag from the status message: 'INSERT 0 3' -> 'INSERT'."""
    if not statusmessage:
        return ""
    return statusmessage.split(" ", 1)[0].upper()


def estimate_size(payload: Any) -> int:
    """UTF-8 byte length of the compact JSON encoding of *payload*."""
    return len(
        json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    )
