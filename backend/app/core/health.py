"""
Health-check helpers for liveness and readiness probes.

Liveness:  is the process alive and not deadlocked?  (cheap, no I/O)
Readiness: is the session registry available?  Per-session pools point at
user supplied servers, so their health is not part of service readiness.
"""

import logging
from typing import Any

from app.core.pool import PoolRegistry

logger = logging.getLogger(__name__)


def liveness_check() -> tuple[bool, list[str]]:
    """
    Lightweight liveness probe, just confirms the Python process is responsive.
    No I/O, no DB calls.  Return format matches readiness_check for consistency.
    """
    return (True, [])


def readiness_check(registry: PoolRegistry | None) -> tuple[bool, list[str], dict[str, Any]]:
    """
    Returns (ok, failures, registry stats). ok is False when the registry was
    never built (lifespan did not run).
    """
    if registry is None:
        logger.warning("Readiness check: pool registry not initialised")
        return (False, ["registry"], {})
    return (True, [], registry.stats())
