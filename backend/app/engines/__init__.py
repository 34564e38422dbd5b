"""
Engines: SQL execution for console sessions.
"""

from app.engines.sql import execute_sql

__all__ = [
    "execute_sql",
]
