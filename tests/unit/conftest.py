"""Shared fixtures for unit tests.

Provides:
- fake_driver: in-memory `Driver` recording every call
- connection: pool `Connection` backed by fake_driver
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from pgtyped import Connection, default_config

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from pgtyped import Config, Value


class FakeDriver:
    """Driver double. Answers queries from canned responses keyed by SQL."""

    POOL_HANDLE = "pool-handle"
    TRANSACTION_HANDLE = "transaction-handle"

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.responses: dict[str, tuple[int, list[Any]]] = {}
        self.failures: dict[str, Exception] = {}
        self.outcomes: list[str] = []
        self.transaction_options: dict[str, Any] = {}
        self.connected_with: Config | None = None
        self.disconnected: list[Any] = []

    def respond(self, sql: str, count: int, rows: list[Any]) -> None:
        self.responses[sql] = (count, rows)

    def fail(self, sql: str, error: Exception) -> None:
        self.failures[sql] = error

    async def aconnect(self, config: Config) -> str:
        self.connected_with = config
        return self.POOL_HANDLE

    async def adisconnect(self, handle: Any) -> None:
        self.disconnected.append(handle)

    async def arun_query(
        self,
        handle: Any,
        sql: str,
        values: Sequence[Value],
        *,
        timeout_ms: int,
        rows_as_map: bool,
    ) -> tuple[int, list[Any]]:
        self.calls.append(
            {
                "handle": handle,
                "sql": sql,
                "values": list(values),
                "timeout_ms": timeout_ms,
                "rows_as_map": rows_as_map,
            }
        )
        if sql in self.failures:
            raise self.failures[sql]
        return self.responses.get(sql, (0, []))

    async def atransaction(
        self,
        handle: Any,
        body: Callable[[Any], Awaitable[Any]],
        *,
        timeout_ms: int,
        isolation: str,
        readonly: bool,
        deferrable: bool,
    ) -> Any:
        self.transaction_options = {
            "handle": handle,
            "timeout_ms": timeout_ms,
            "isolation": isolation,
            "readonly": readonly,
            "deferrable": deferrable,
        }
        try:
            result = await body(self.TRANSACTION_HANDLE)
        except BaseException:
            self.outcomes.append("rollback")
            raise
        self.outcomes.append("commit")
        return result


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def connection(fake_driver: FakeDriver) -> Connection:
    return Connection(default_config(), fake_driver, FakeDriver.POOL_HANDLE)
