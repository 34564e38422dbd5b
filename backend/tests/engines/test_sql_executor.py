"""Unit tests for engines.sql.executor against in-memory pools."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import psycopg
import pytest

from app.core.errors import (
    AcquireTimeout,
    EmptyQuery,
    NoActiveConnection,
    QueryFailed,
    ResultTooLarge,
)
from app.engines.sql import execute_sql
from app.schemas_console import QueryOptions
from tests.utils.pool import FakePool, FakeResult, StubRegistry

SID = "c0ffee00-1111-2222-3333-444444444444"


def _setup(**pool_kwargs: Any) -> tuple[StubRegistry, FakePool]:
    pool = FakePool(**pool_kwargs)
    return StubRegistry({SID: pool}), pool


def test_select_one_shape() -> None:
    registry, pool = _setup()
    pool.results.append(FakeResult.select([("?column?", 23)], [{"?column?": 1}]))

    result = asyncio.run(execute_sql(registry, SID, "SELECT 1"))

    assert result.rows == [{"?column?": 1}]
    assert result.row_count == 1
    assert result.command == "SELECT"
    assert result.truncated is False
    assert result.execution_time >= 0
    assert [f.name for f in result.fields] == ["?column?"]
    assert result.fields[0].data_type_id == 23
    assert pool.checked_out == 0

    body = result.model_dump(mode="json")
    assert set(body) == {"rows", "fields", "rowCount", "command", "executionTime", "truncated"}
    assert body["fields"][0] == {"name": "?column?", "dataTypeID": 23, "tableID": None}


def test_rows_are_truncated_to_max_rows() -> None:
    registry, pool = _setup()
    rows = [{"n": i} for i in range(5000)]
    pool.results.append(FakeResult.select([("n", 23)], rows))

    result = asyncio.run(
        execute_sql(registry, SID, "SELECT generate_series(1, 5000) AS n", QueryOptions(max_rows=1000))
    )

    assert len(result.rows) == 1000
    assert result.row_count == 5000
    assert result.truncated is True


def test_result_size_cap() -> None:
    registry, pool = _setup()
    pool.results.append(FakeResult.select([("blob", 25)], [{"blob": "x" * 10_000}]))

    with pytest.raises(ResultTooLarge) as exc_info:
        asyncio.run(
            execute_sql(registry, SID, "SELECT repeat('x', 10000)", QueryOptions(max_result_bytes=1024))
        )

    assert exc_info.value.limit == 1024
    assert exc_info.value.size > 1024
    assert exc_info.value.status_code == 500
    assert pool.checked_out == 0


def test_no_pool_raises_without_touching_database() -> None:
    registry, pool = _setup()

    with pytest.raises(NoActiveConnection):
        asyncio.run(execute_sql(registry, "unknown-session", "SELECT 1"))
    with pytest.raises(NoActiveConnection):
        asyncio.run(execute_sql(registry, None, "SELECT 1"))

    assert pool.getconn_calls == 0


def test_empty_query_rejected() -> None:
    registry, pool = _setup()

    for sql in (None, "", "   \n\t"):
        with pytest.raises(EmptyQuery):
            asyncio.run(execute_sql(registry, SID, sql))

    assert pool.getconn_calls == 0


def test_query_error_is_reported_and_connection_returned() -> None:
    registry, pool = _setup(max_size=1)
    pool.query_error = psycopg.errors.UndefinedTable('relation "missing" does not exist')

    for _ in range(5):
        with pytest.raises(QueryFailed) as exc_info:
            asyncio.run(execute_sql(registry, SID, "SELECT * FROM missing"))
        assert exc_info.value.message == 'Error: relation "missing" does not exist'
        assert exc_info.value.status_code == 500

    assert pool.checked_out == 0
    assert pool.getconn_calls == 5

    pool.query_error = None
    result = asyncio.run(execute_sql(registry, SID, "SELECT 1 AS x"))
    assert result.rows == [{"x": 1}]


def test_statement_timeout_applied_then_reset() -> None:
    registry, pool = _setup()

    asyncio.run(execute_sql(registry, SID, "SELECT 1 AS x", QueryOptions(timeout_ms=2500)))

    executed = [sql for sql, _ in pool.last_connection.executed]
    assert executed == [
        "SELECT set_config('statement_timeout', %s, false)",
        "SELECT 1 AS x",
        "RESET statement_timeout",
    ]
    assert pool.last_connection.executed[0][1] == ("2500",)


def test_statement_timeout_reset_after_failure() -> None:
    registry, pool = _setup()
    pool.query_error = psycopg.errors.QueryCanceled(
        "canceling statement due to statement timeout"
    )

    with pytest.raises(QueryFailed):
        asyncio.run(execute_sql(registry, SID, "SELECT pg_sleep(10)", QueryOptions(timeout_ms=100)))

    assert pool.last_connection.executed[-1] == ("RESET statement_timeout", None)
    assert pool.checked_out == 0


def test_zero_timeout_skips_set_config() -> None:
    registry, pool = _setup()

    asyncio.run(execute_sql(registry, SID, "SELECT 1 AS x", QueryOptions(timeout_ms=0)))

    assert [sql for sql, _ in pool.last_connection.executed] == ["SELECT 1 AS x"]


def test_reset_failure_does_not_fail_query() -> None:
    registry, pool = _setup()
    pool.reset_error = True

    result = asyncio.run(execute_sql(registry, SID, "SELECT 1 AS x"))

    assert result.rows == [{"x": 1}]
    assert pool.checked_out == 0


def test_acquire_timeout_when_pool_exhausted() -> None:
    registry, pool = _setup(max_size=1)
    pool.checked_out = 1

    with pytest.raises(AcquireTimeout) as exc_info:
        asyncio.run(execute_sql(registry, SID, "SELECT 1"))

    assert exc_info.value.status_code == 503


def test_closed_pool_maps_to_no_active_connection() -> None:
    registry, pool = _setup()
    pool.closed = True

    with pytest.raises(NoActiveConnection):
        asyncio.run(execute_sql(registry, SID, "SELECT 1"))


def test_values_are_json_safe() -> None:
    registry, pool = _setup()
    ts = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    pool.results.append(
        FakeResult.select(
            [("ts", 1184), ("amount", 1700), ("data", 17), ("tags", 1009)],
            [{"ts": ts, "amount": Decimal("12.50"), "data": b"\x01\xff", "tags": ["a", "b"]}],
        )
    )

    result = asyncio.run(execute_sql(registry, SID, "SELECT ..."))

    assert result.rows == [
        {
            "ts": "2024-05-01T12:30:00+00:00",
            "amount": "12.50",
            "data": "\\x01ff",
            "tags": ["a", "b"],
        }
    ]


def test_dml_without_result_set() -> None:
    registry, pool = _setup()
    pool.results.append(FakeResult(rowcount=3, status="INSERT 0 3"))

    result = asyncio.run(execute_sql(registry, SID, "INSERT INTO t VALUES (1), (2), (3)"))

    assert result.rows == []
    assert result.fields == []
    assert result.row_count == 3
    assert result.command == "INSERT"
    assert result.truncated is False


def test_params_are_passed_to_driver() -> None:
    registry, pool = _setup()

    asyncio.run(
        execute_sql(
            registry,
            SID,
            "SELECT %(n)s AS x",
            QueryOptions(timeout_ms=0),
            params={"n": 1},
        )
    )

    assert pool.last_connection.executed == [("SELECT %(n)s AS x", {"n": 1})]
