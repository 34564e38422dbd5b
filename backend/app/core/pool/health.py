"""
Liveness probe for session pools.
"""

import logging
from enum import Enum
from typing import Any

from app.core.config import settings

_log = logging.getLogger(__name__)


class ProbeResult(str, Enum):
    ALIVE = "alive"
    DEAD = "dead"


async def probe(pool: Any, *, timeout: float | None = None) -> ProbeResult:
    """
    Borrow a connection and run SELECT 1. Returns DEAD instead of raising, so
    callers decide between reuse and teardown with a plain state check.
    """
    wait = settings.EXTERNAL_DB_ACQUIRE_TIMEOUT if timeout is None else timeout
    try:
        async with pool.connection(timeout=wait) as conn:
            cur = await conn.execute("SELECT 1")
            await cur.fetchone()
        return ProbeResult.ALIVE
    except Exception as e:
        _log.warning("Pool probe failed: %s", e)
        return ProbeResult.DEAD
