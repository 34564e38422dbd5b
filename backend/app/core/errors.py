"""
Error taxonomy for the session pool registry and the query executor.

Every error carries the HTTP status the API layer answers with and a
user-facing ``message``; ``error`` is the underlying detail (driver message
verbatim where there is one). Raw psycopg / psycopg_pool exceptions are
translated into these at the core boundary and never reach the routes.
"""

from enum import Enum


class ConsoleError(Exception):
    """Base class; rendered as ``{success: false, message, error}``."""

    status_code: int = 500
    message: str = "Unexpected error"

    def __init__(self, error: str | None = None, *, message: str | None = None) -> None:
        self.error = error
        if message is not None:
            self.message = message
        super().__init__(error or self.message)


class InvalidParameters(ConsoleError):
    status_code = 400
    message = "Invalid connection parameters"


class ConnectFailureReason(str, Enum):
    AUTH = "auth"
    UNREACHABLE = "unreachable"
    OTHER = "other"


class ConnectionFailed(ConsoleError):
    """Pool creation failed; ``reason`` selects 401 / 503 / 500."""

    message = "Failed to connect to the database"

    def __init__(
        self,
        error: str | None = None,
        *,
        reason: ConnectFailureReason = ConnectFailureReason.OTHER,
    ) -> None:
        self.reason = reason
        if reason == ConnectFailureReason.AUTH:
            self.status_code = 401
            message = "Authentication failed. Check the username and password."
        elif reason == ConnectFailureReason.UNREACHABLE:
            self.status_code = 503
            message = "Database server is unreachable"
        else:
            self.status_code = 500
            message = self.message
        super().__init__(error, message=message)


class AcquireTimeout(ConsoleError):
    status_code = 503
    message = "All database connections for this session are busy. Try again."


class NoActiveConnection(ConsoleError):
    status_code = 401
    message = "No active database connection. Please log in again."


class EmptyQuery(ConsoleError):
    status_code = 400
    message = "No query was given."


class QueryFailed(ConsoleError):
    message = "Query execution failed"

    def __init__(self, error: str, *, sqlstate: str | None = None) -> None:
        self.sqlstate = sqlstate
        super().__init__(error, message=f"Error: {error}")


class ResultTooLarge(ConsoleError):
    message = "Query result is too large. Narrow the query (add LIMIT or fewer columns)."

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Result size {size} bytes exceeds limit of {limit} bytes")


class TeardownError(Exception):
    """Closing a pool failed. Returned and logged by the registry, never raised."""

    def __init__(self, session_id: str, cause: BaseException) -> None:
        self.session_id = session_id
        self.cause = cause
        super().__init__(f"session {session_id[:8]}...: {cause}")
