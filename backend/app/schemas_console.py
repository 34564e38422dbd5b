"""
Pydantic schemas for the console API: connection parameters, query input,
normalized query results and the response envelopes.
"""

import hashlib
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class ConnectionParams(BaseModel):
    """Body for POST /postgres/connect. Port may arrive as a string from forms."""

    model_config = ConfigDict(hide_input_in_errors=True)

    host: str = Field(..., min_length=1, max_length=255)
    port: int = Field(..., ge=1, le=65535)
    database: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., max_length=512, repr=False)

    @field_validator("port", mode="before")
    @classmethod
    def parse_port(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("port must be an integer")
        if isinstance(v, str):
            v = v.strip()
            if not v.isdigit():
                raise ValueError("port must be an integer")
            return int(v)
        return v

    @field_validator("host", "database", "username", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        # password is kept byte-for-byte
        return v.strip() if isinstance(v, str) else v

    def fingerprint(self) -> str:
        """Identity of the target database + credentials, without exposing the password."""
        raw = "\x00".join(
            [self.host, str(self.port), self.database, self.username, self.password]
        )
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ConnectDetails(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, serialize_by_alias=True
    )

    server_version: str | None = None
    connected_at: datetime
    timeout: int


class ConnectResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, serialize_by_alias=True
    )

    success: bool = True
    message: str
    session_id: str | None = None
    details: ConnectDetails | None = None


class Message(BaseModel):
    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class QueryIn(BaseModel):
    """Body for POST /postgres/query."""

    query: str | None = None


class QueryOptions(BaseModel):
    """Per-call overrides for the executor; ``None`` falls back to settings."""

    timeout_ms: int | None = Field(default=None, ge=0)
    max_rows: int | None = Field(default=None, ge=1)
    max_result_bytes: int | None = Field(default=None, ge=1)
    log_query: bool | None = None


class FieldDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    name: str
    data_type_id: int | None = Field(default=None, alias="dataTypeID")
    table_id: int | None = Field(default=None, alias="tableID")


class QueryResult(BaseModel):
    """Normalized, JSON-safe result of one statement."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, serialize_by_alias=True
    )

    rows: list[dict[str, Any]] = Field(default_factory=list)
    fields: list[FieldDescriptor] = Field(default_factory=list)
    # As reported by the server; not reduced by row truncation
    row_count: int = 0
    command: str = ""
    execution_time: float = 0.0
    truncated: bool = False


class QueryResponse(BaseModel):
    success: bool = True
    message: str | None = None
    results: QueryResult


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TableListOut(BaseModel):
    success: bool = True
    tables: list[str]


class TableDetailOut(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, serialize_by_alias=True
    )

    success: bool = True
    name: str
    columns: list[dict[str, Any]]
    indexes: list[dict[str, Any]]
    row_count: int


class DatabaseInfoOut(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, serialize_by_alias=True
    )

    success: bool = True
    version: str | None = None
    table_count: int = 0
