from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.core.health import liveness_check, readiness_check

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/liveness/", response_model=None)
async def liveness() -> bool | JSONResponse:
    """
    Liveness probe: is the process alive and responsive?

    Lightweight: no DB I/O.  If this fails the container should be
    restarted by the orchestrator.
    """
    ok, failures = liveness_check()
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Process unhealthy", "data": failures},
        )
    return True


@router.get("/health-check/", response_model=None)
async def health_check(request: Request) -> dict[str, Any] | JSONResponse:
    """
    Readiness probe: can the service handle traffic?

    Returns 200 with session pool statistics; 503 if the registry is missing.
    """
    registry = getattr(request.app.state, "registry", None)
    ok, failures, stats = readiness_check(registry)
    if not ok:
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "message": "Service Unavailable",
                "data": failures,
            },
        )
    return {"success": True, "message": None, "data": stats}
