"""
Schema browsing helpers for a console session.

Thin wrappers over execute_sql that read information_schema / pg_indexes.
Table and schema names are user input: they are always bound as parameters or
quoted with psycopg.sql.Identifier, never formatted into the SQL text.
"""

from typing import Any

from psycopg import sql as pgsql

from app.core.pool import PoolRegistry
from app.schemas_console import QueryOptions

from .executor import execute_sql

DEFAULT_SCHEMA = "public"

# Catalog listings must be complete; QUERY_MAX_ROWS only applies to console queries
CATALOG_OPTIONS = QueryOptions(max_rows=100_000)


async def list_tables(
    registry: PoolRegistry, session_id: str | None, schema: str = DEFAULT_SCHEMA
) -> list[str]:
    result = await execute_sql(
        registry,
        session_id,
        "SELECT table_name FROM information_schema.tables "
        "WHERE table_schema = %(schema)s ORDER BY table_name",
        CATALOG_OPTIONS,
        params={"schema": schema},
    )
    return [row["table_name"] for row in result.rows]


async def get_table_columns(
    registry: PoolRegistry,
    session_id: str | None,
    table: str,
    schema: str = DEFAULT_SCHEMA,
) -> list[dict[str, Any]]:
    result = await execute_sql(
        registry,
        session_id,
        "SELECT column_name, data_type, is_nullable, column_default "
        "FROM information_schema.columns "
        "WHERE table_name = %(table)s AND table_schema = %(schema)s "
        "ORDER BY ordinal_position",
        CATALOG_OPTIONS,
        params={"table": table, "schema": schema},
    )
    return result.rows


async def get_table_indexes(
    registry: PoolRegistry,
    session_id: str | None,
    table: str,
    schema: str = DEFAULT_SCHEMA,
) -> list[dict[str, Any]]:
    result = await execute_sql(
        registry,
        session_id,
        "SELECT indexname, indexdef FROM pg_indexes "
        "WHERE tablename = %(table)s AND schemaname = %(schema)s "
        "ORDER BY indexname",
        CATALOG_OPTIONS,
        params={"table": table, "schema": schema},
    )
    return result.rows


async def get_table_row_count(
    registry: PoolRegistry,
    session_id: str | None,
    table: str,
    schema: str = DEFAULT_SCHEMA,
) -> int:
    query = pgsql.SQL("SELECT count(*) AS count FROM {}").format(
        pgsql.Identifier(schema, table)
    )
    result = await execute_sql(registry, session_id, query)
    return int(result.rows[0]["count"]) if result.rows else 0


async def get_database_info(
    registry: PoolRegistry, session_id: str | None, schema: str = DEFAULT_SCHEMA
) -> dict[str, Any]:
    """Server version string and number of tables in *schema*."""
    version = await execute_sql(registry, session_id, "SELECT version() AS version")
    tables = await execute_sql(
        registry,
        session_id,
        "SELECT count(*) AS count FROM information_schema.tables "
        "WHERE table_schema = %(schema)s",
        params={"schema": schema},
    )
    return {
        "version": version.rows[0]["version"] if version.rows else None,
        "table_count": int(tables.rows[0]["count"]) if tables.rows else 0,
    }
