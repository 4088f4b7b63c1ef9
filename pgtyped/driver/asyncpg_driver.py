"""asyncpg implementation of the `Driver` protocol.

The pool handle wraps an ``asyncpg.Pool`` created with ``min_size=0``: nothing is
opened until the first query needs a connection, so `aconnect` succeeds even
while the server is unreachable. Checkout retries transient connection
failures with exponential backoff before giving up.
"""

from __future__ import annotations

import datetime as dt
import re
from contextlib import asynccontextmanager
from time import monotonic
from typing import TYPE_CHECKING, Any, Final, TypeVar

import asyncpg
from asyncpg import Pool, Record

from ..errcodes import error_code_name
from ..errors import (
    ConnectionUnavailableError,
    ConstraintViolatedError,
    PostgresqlError,
    QueryError,
    UnexpectedArgumentCountError,
    UnexpectedArgumentTypeError,
)
from ..logger import get_logger
from ..resilience import RetryConfig, retry
from ..values import (
    ArrayValue,
    BoolValue,
    ByteaValue,
    DateValue,
    FloatValue,
    IntValue,
    NullValue,
    TextValue,
    TimestampValue,
    TimeValue,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

    from asyncpg.pool import PoolConnectionProxy
    from tenacity import RetryCallState

    from ..config import Config
    from ..values import Value
    from .base import IsolationLevel, RawRow

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CHECKOUT_RETRY: Final = RetryConfig(
    max_attempts=3,
    retry_on_exceptions=(
        OSError,
        asyncpg.exceptions.CannotConnectNowError,
        asyncpg.exceptions.TooManyConnectionsError,
    ),
    never_retry_on=(TimeoutError,),
)

_DRIVER_ERRORS: Final = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError)

# SQLSTATE classes and codes meaning "no usable connection".
_CONNECTION_CLASSES: Final = frozenset({"08", "28"})
_CONNECTION_CODES: Final = frozenset({"53300", "57P01", "57P02", "57P03"})

_CLIENT_ARGUMENT_COUNT = re.compile(r"expects (\d+) arguments? for this query, (\d+) (?:was|were) passed")
_SERVER_ARGUMENT_COUNT = re.compile(r"supplies (\d+) parameters?, but prepared statement .*requires (\d+)")
_ARGUMENT_TYPE = re.compile(r"invalid input for query argument \$(\d+): (.*)", re.DOTALL)
_EXPECTED_GOT = re.compile(r"expected (\w+), got (\w+)")
_REQUIRED_GOT = re.compile(r"an? (\w+) is required \(got type (\w+)\)")


def classify_error(error: Exception) -> QueryError:
    """Translate an asyncpg or socket failure into a `QueryError`."""
    if isinstance(error, asyncpg.PostgresError):
        return _classify_postgres_error(error)
    if isinstance(error, asyncpg.InterfaceError):
        return _classify_interface_error(error)
    if isinstance(error, TimeoutError):
        return ConnectionUnavailableError("timed out waiting for the database")
    return ConnectionUnavailableError(str(error) or type(error).__name__)


def _classify_postgres_error(error: asyncpg.PostgresError) -> QueryError:
    code: str = getattr(error, "sqlstate", None) or ""
    message: str = getattr(error, "message", None) or str(error)

    if code == "08P01" and (match := _SERVER_ARGUMENT_COUNT.search(message)):
        return UnexpectedArgumentCountError(expected=int(match.group(2)), got=int(match.group(1)))
    if code[:2] in _CONNECTION_CLASSES or code in _CONNECTION_CODES:
        return ConnectionUnavailableError(message)

    constraint = getattr(error, "constraint_name", None)
    if constraint:
        return ConstraintViolatedError(message, constraint, getattr(error, "detail", None) or "")

    return PostgresqlError(code, error_code_name(code) or "unknown", message)


def _classify_interface_error(error: asyncpg.InterfaceError) -> QueryError:
    message = str(error)

    if match := _CLIENT_ARGUMENT_COUNT.search(message):
        return UnexpectedArgumentCountError(expected=int(match.group(1)), got=int(match.group(2)))

    if match := _ARGUMENT_TYPE.search(message):
        detail = match.group(2)
        if types := _EXPECTED_GOT.search(detail) or _REQUIRED_GOT.search(detail):
            return UnexpectedArgumentTypeError(expected=types.group(1), got=types.group(2))
        return UnexpectedArgumentTypeError(expected=f"valid input for ${match.group(1)}", got=detail)

    return ConnectionUnavailableError(message)


def to_asyncpg_argument(value: Value) -> Any:
    """Convert an encoded `Value` into the Python object asyncpg binds."""
    match value:
        case NullValue():
            return None
        case BoolValue(value=v) | IntValue(value=v) | FloatValue(value=v) | TextValue(value=v) | ByteaValue(value=v):
            return v
        case ArrayValue(items=items):
            return [to_asyncpg_argument(item) for item in items]
        case DateValue():
            return dt.date(value.year, value.month, value.day)
        case TimeValue():
            seconds, microseconds = divmod(round(value.seconds * 1_000_000), 1_000_000)
            return dt.time(value.hours, value.minutes, seconds, microseconds)
        case TimestampValue(date=date, time=time):
            return dt.datetime.combine(to_asyncpg_argument(date), to_asyncpg_argument(time))
    raise TypeError(f"Unsupported value: {value!r}")


def _to_row(record: Record, *, rows_as_map: bool) -> RawRow:
    if rows_as_map:
        return dict(record.items())
    return tuple(record.values())


def _row_count(status: str | None, returned: int) -> int:
    """Row count from a command tag such as ``INSERT 0 3`` or ``SELECT 2``."""
    if status:
        tag = status.rsplit(" ", 1)[-1]
        if tag.isdigit():
            return int(tag)
    return returned


def _remaining(deadline: float) -> float:
    """Seconds left until ``deadline``; `TimeoutError` once it has passed."""
    remaining = deadline - monotonic()
    if remaining <= 0:
        raise TimeoutError
    return remaining


def _log_checkout_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Connection checkout failed, retrying",
        attempt=state.attempt_number,
        error=str(error),
    )


class PoolHandle:
    """An asyncpg pool plus how long callers may queue for one of its connections.

    Checkout waits at most ``queue_target + queue_interval`` milliseconds, and
    never longer than the timeout of the query asking for the connection.
    """

    __slots__ = ("checkout_budget_ms", "pool")

    def __init__(self, pool: Pool[Record], checkout_budget_ms: int) -> None:
        self.pool = pool
        self.checkout_budget_ms = checkout_budget_ms

    def checkout_timeout(self, timeout_ms: int) -> float:
        return min(self.checkout_budget_ms, timeout_ms) / 1000


class AsyncpgDriver:
    """`Driver` backed by an asyncpg connection pool.

    Examples
    --------
    >>> db = await aconnect(default_config(), driver=AsyncpgDriver())
    """

    __slots__ = ("_acheckout",)

    def __init__(self, retry_config: RetryConfig | None = None) -> None:
        self._acheckout = retry(
            retry_config or DEFAULT_CHECKOUT_RETRY,
            before_sleep=_log_checkout_retry,
        )(self._acheckout_once)

    async def aconnect(self, config: Config) -> PoolHandle:
        pool: Pool[Record] = await asyncpg.create_pool(**config.to_pool_params())
        logger.info("Connection pool created", **config.log_fields())
        return PoolHandle(pool, checkout_budget_ms=config.queue_target + config.queue_interval)

    async def adisconnect(self, handle: PoolHandle) -> None:
        await handle.pool.close()
        logger.info("Connection pool closed")

    async def _acheckout_once(self, pool: Pool[Record], timeout: float) -> PoolConnectionProxy[Record]:
        return await pool.acquire(timeout=timeout)

    @asynccontextmanager
    async def _aacquire(self, handle: Any, timeout_ms: int) -> AsyncIterator[Any]:
        """Yield a connection for ``handle``.

        Pool handles check a connection out for the duration of the block;
        transaction-scoped connections are used as they are.
        """
        if not isinstance(handle, PoolHandle):
            yield handle
            return

        conn = await self._acheckout(handle.pool, handle.checkout_timeout(timeout_ms))
        try:
            yield conn
        finally:
            await handle.pool.release(conn)

    async def arun_query(
        self,
        handle: Any,
        sql: str,
        values: Sequence[Value],
        *,
        timeout_ms: int,
        rows_as_map: bool,
    ) -> tuple[int, list[RawRow]]:
        # One deadline covers checkout, prepare and fetch together.
        deadline = monotonic() + timeout_ms / 1000
        arguments = [to_asyncpg_argument(value) for value in values]
        try:
            async with self._aacquire(handle, timeout_ms) as conn:
                statement = await conn.prepare(sql, timeout=_remaining(deadline))
                records = await statement.fetch(*arguments, timeout=_remaining(deadline))
                status = statement.get_statusmsg()
        except _DRIVER_ERRORS as e:
            raise classify_error(e) from e

        rows = [_to_row(record, rows_as_map=rows_as_map) for record in records]
        return _row_count(status, len(rows)), rows

    async def atransaction(
        self,
        handle: Any,
        body: Callable[[Any], Awaitable[T]],
        *,
        timeout_ms: int,
        isolation: IsolationLevel,
        readonly: bool,
        deferrable: bool,
    ) -> T:
        """Run ``body`` on a connection inside a transaction.

        Only failures of checkout, BEGIN and COMMIT/ROLLBACK are classified.
        Whatever ``body`` raises rolls the transaction back and propagates
        as it is, even when it is an `OSError` or `TimeoutError`.
        """
        body_error: BaseException | None = None
        try:
            async with (
                self._aacquire(handle, timeout_ms) as conn,
                conn.transaction(isolation=isolation, readonly=readonly, deferrable=deferrable),
            ):
                try:
                    return await body(conn)
                except BaseException as e:
                    body_error = e
                    raise
        except _DRIVER_ERRORS as e:
            if e is body_error:
                raise
            raise classify_error(e) from e
