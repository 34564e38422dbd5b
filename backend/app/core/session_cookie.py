"""
Session cookie and cache headers for the console API.

The cookie only carries the opaque session id; connection parameters never
leave the server after connect.
"""

import logging
from datetime import datetime, timedelta, timezone

from starlette.responses import Response

from app.core.config import settings

_log = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def apply_no_cache(response: Response) -> Response:
    for key, value in NO_CACHE_HEADERS.items():
        response.headers[key] = value
    return response


def set_session_cookie(response: Response, session_id: str) -> None:
    """Issue (or slide forward) the session cookie."""
    max_age = settings.SESSION_COOKIE_MAX_AGE
    expires = datetime.now(timezone.utc) + timedelta(seconds=max_age)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        max_age=max_age,
        expires=expires,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.SESSION_COOKIE_SAMESITE,
    )
    _log.debug(
        "Set session cookie %s... expires %s", session_id[:8], expires.isoformat()
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.SESSION_COOKIE_SAMESITE,
    )
