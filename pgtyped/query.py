"""Query construction and execution.

Examples
--------
>>> from pgtyped import decode, values
>>> find_user = (
...     query("SELECT id, name FROM users WHERE id = $1 AND active = $2")
...     .parameter(values.int_(7))
...     .parameter(values.bool_(True))
...     .returning(decode.row(decode.int_, decode.string))
... )
>>> returned = await aexecute(find_user, db)
>>> returned.rows
((7, 'alice'),)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from . import decode
from .decode import DecodeFailure, Decoder
from .errors import QueryError, UnexpectedResultTypeError
from .logger import get_logger
from .values import Value

if TYPE_CHECKING:
    from .connection import Connection

logger = get_logger(__name__)

RowT = TypeVar("RowT")
NewRowT = TypeVar("NewRowT")


class Query(BaseModel, Generic[RowT]):
    """An SQL statement with its parameters, row decoder and timeout.

    Builder methods return a new query; a `Query` is never modified.

    ``parameters`` holds the most recently added value first. `aexecute`
    restores call order before the statement is sent.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sql: str
    parameters: tuple[Value, ...] = Field(default_factory=tuple)
    decoder: Decoder[Any] = Field(default_factory=lambda: decode.ignore)
    timeout: int | None = Field(default=None, ge=1)

    def returning(self, decoder: Decoder[NewRowT]) -> Query[NewRowT]:
        """Use ``decoder`` for every row the statement returns."""
        return self.model_copy(update={"decoder": decoder})  # type: ignore[return-value]

    def parameter(self, value: Value) -> Query[RowT]:
        """Bind the next ``$n`` placeholder to ``value``."""
        return self.model_copy(update={"parameters": (value, *self.parameters)})

    def with_timeout(self, milliseconds: int) -> Query[RowT]:
        """Override the connection's default timeout for this query.

        Raises `ValidationError` unless ``milliseconds`` is positive.
        """
        return type(self).model_validate({**dict(self), "timeout": milliseconds})


class Returned(BaseModel, Generic[RowT]):
    """Rows affected or returned by a statement, with the decoded rows."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    count: int
    rows: tuple[RowT, ...] = Field(default_factory=tuple)


def query(sql: str) -> Query[None]:
    """Start a query. Its rows are ignored until `returning` sets a decoder."""
    return Query(sql=sql)


def returning(q: Query[Any], decoder: Decoder[NewRowT]) -> Query[NewRowT]:
    return q.returning(decoder)


def parameter(q: Query[RowT], value: Value) -> Query[RowT]:
    return q.parameter(value)


def timeout(q: Query[RowT], milliseconds: int) -> Query[RowT]:
    return q.with_timeout(milliseconds)


async def aexecute(q: Query[RowT], connection: Connection) -> Returned[RowT]:
    """Run ``q`` and decode the rows it returns.

    Parameters
    ----------
    q
        Query to run.
    connection
        Pool connection, or the connection passed to a transaction body.

    Returns
    -------
    Returned[RowT]
        Row count reported by the server and the decoded rows, in the order
        the server returned them.

    Raises
    ------
    QueryError
        The driver's classification of a failed statement.
    UnexpectedResultTypeError
        A row could not be decoded. The statement has already run.
    """
    config = connection.config
    values = tuple(reversed(q.parameters))
    timeout_ms = q.timeout if q.timeout is not None else config.default_timeout

    started = time.perf_counter()
    try:
        count, raw_rows = await connection.driver.arun_query(
            connection.handle,
            q.sql,
            values,
            timeout_ms=timeout_ms,
            rows_as_map=config.rows_as_map,
        )
    except QueryError as e:
        if config.trace:
            logger.warning("Query failed", sql=q.sql, parameter_count=len(values), error_kind=e.kind, error=str(e))
        raise

    if config.trace:
        logger.info(
            "Query executed",
            sql=q.sql,
            parameter_count=len(values),
            row_count=count,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    try:
        rows = tuple(q.decoder.run(raw) for raw in raw_rows)
    except DecodeFailure as e:
        raise UnexpectedResultTypeError(e.errors, count=count) from e

    return Returned(count=count, rows=rows)
