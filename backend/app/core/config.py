from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api"
    PROJECT_NAME: str = "RDB Web Console"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    FRONTEND_HOST: str = "http://localhost:3000"
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    # Tag on every pooled connection (visible in pg_stat_activity)
    APPLICATION_NAME: str = "rdb-web-console"

    # Per-session pools against user supplied PostgreSQL servers
    EXTERNAL_DB_POOL_SIZE: int = 20
    EXTERNAL_DB_POOL_MIN_SIZE: int = 1
    EXTERNAL_DB_POOL_IDLE_TIMEOUT: float = 60.0
    EXTERNAL_DB_CONNECT_TIMEOUT: int = 5
    EXTERNAL_DB_ACQUIRE_TIMEOUT: float = 5.0
    # After this long without a successful reconnect the session pool is dropped
    EXTERNAL_DB_POOL_RECONNECT_TIMEOUT: float = 60.0
    # Seconds; 0 disables statement_timeout
    EXTERNAL_DB_STATEMENT_TIMEOUT: int = 30

    QUERY_MAX_ROWS: int = 1000
    QUERY_MAX_RESULT_BYTES: int = 5 * 1024 * 1024
    QUERY_LOG_SQL: bool = False

    SESSION_COOKIE_NAME: str = "postgres-session"
    SESSION_COOKIE_MAX_AGE: int = 86400
    SESSION_COOKIE_SAMESITE: Literal["lax", "strict"] = "lax"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def session_cookie_secure(self) -> bool:
        return self.ENVIRONMENT != "local"


settings = Settings()  # type: ignore
