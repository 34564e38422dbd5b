"""
SQL engine for console sessions.

Exports: execute_sql and the catalog helpers.
"""

from app.engines.sql.catalog import (
    get_database_info,
    get_table_columns,
    get_table_indexes,
    get_table_row_count,
    list_tables,
)
from app.engines.sql.executor import execute_sql

__all__ = [
    "execute_sql",
    "list_tables",
    "get_table_columns",
    "get_table_indexes",
    "get_table_row_count",
    "get_database_info",
]
