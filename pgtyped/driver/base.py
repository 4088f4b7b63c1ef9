from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeAlias, TypeVar

if TYPE_CHECKING:
    from ..config import Config
    from ..values import Value

T = TypeVar("T")

RawRow: TypeAlias = tuple[Any, ...] | Mapping[str, Any]
IsolationLevel: TypeAlias = Literal["read_uncommitted", "read_committed", "repeatable_read", "serializable"]


class Driver(Protocol):
    """What pgtyped needs from the library that talks to PostgreSQL.

    Handles returned by `aconnect`, and the transaction-scoped handles passed
    to a transaction body, are opaque: pgtyped only hands them back to the
    same driver.

    Every failure of `arun_query` and `atransaction` must be raised as one of
    the `pgtyped.errors.QueryError` subclasses.
    """

    async def aconnect(self, config: Config) -> Any: ...

    async def adisconnect(self, handle: Any) -> None: ...

    async def arun_query(
        self,
        handle: Any,
        sql: str,
        values: Sequence[Value],
        *,
        timeout_ms: int,
        rows_as_map: bool,
    ) -> tuple[int, list[RawRow]]: ...

    async def atransaction(
        self,
        handle: Any,
        body: Callable[[Any], Awaitable[T]],
        *,
        timeout_ms: int,
        isolation: IsolationLevel,
        readonly: bool,
        deferrable: bool,
    ) -> T: ...
