from typing import Annotated

from fastapi import Depends, Request, Response

from app.core.config import settings
from app.core.pool import PoolRegistry
from app.core.session_cookie import apply_no_cache


def get_registry(request: Request) -> PoolRegistry:
    """The process-wide registry built in the app lifespan."""
    return request.app.state.registry


def get_session_id(request: Request) -> str | None:
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


def no_cache(response: Response) -> None:
    apply_no_cache(response)


RegistryDep = Annotated[PoolRegistry, Depends(get_registry)]
SessionIdDep = Annotated[str | None, Depends(get_session_id)]
