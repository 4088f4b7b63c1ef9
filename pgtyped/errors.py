"""Exceptions raised by pgtyped.

Query failures form a closed set under `QueryError`; every failure reported
by a driver is translated into exactly one of them. Transactions add two
outcomes under `TransactionError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from .enums import QueryErrorKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .decode import DecodeError


class PgTypedError(Exception):
    """Base class for all pgtyped errors."""


class UrlParseError(PgTypedError, ValueError):
    """Raised when a database URL cannot be turned into a `Config`."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid database URL: {reason}")


class QueryError(PgTypedError):
    """Base class for failures of a single query execution."""

    kind: ClassVar[QueryErrorKind]


class ConstraintViolatedError(QueryError):
    """The database rejected the statement because of a named constraint."""

    kind = QueryErrorKind.CONSTRAINT_VIOLATED

    def __init__(self, message: str, constraint: str, detail: str) -> None:
        self.message = message
        self.constraint = constraint
        self.detail = detail
        super().__init__(f"{message} (constraint {constraint!r})")


class PostgresqlError(QueryError):
    """Any other error reported by the database server."""

    kind = QueryErrorKind.POSTGRESQL_ERROR

    def __init__(self, code: str, name: str, message: str) -> None:
        self.code = code
        self.name = name
        self.message = message
        super().__init__(f"[{code} {name}] {message}")


class UnexpectedArgumentCountError(QueryError):
    kind = QueryErrorKind.UNEXPECTED_ARGUMENT_COUNT

    def __init__(self, expected: int, got: int) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"Query expects {expected} parameter(s), got {got}")


class UnexpectedArgumentTypeError(QueryError):
    kind = QueryErrorKind.UNEXPECTED_ARGUMENT_TYPE

    def __init__(self, expected: str, got: str) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"Unexpected parameter type: expected {expected}, got {got}")


class UnexpectedResultTypeError(QueryError):
    """Rows came back but could not be decoded.

    The statement has already run on the server, so any side effects have
    taken place. ``count`` is the row count the server reported.
    """

    kind = QueryErrorKind.UNEXPECTED_RESULT_TYPE

    def __init__(self, errors: Sequence[DecodeError], count: int | None = None) -> None:
        self.errors = tuple(errors)
        self.count = count
        summary = "; ".join(str(error) for error in self.errors)
        super().__init__(f"Unable to decode result rows: {summary}")


class ConnectionUnavailableError(QueryError):
    """No usable connection: bad credentials, exhausted pool, or timeout."""

    kind = QueryErrorKind.CONNECTION_UNAVAILABLE

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Connection unavailable: {reason}")


class TransactionError(PgTypedError):
    """Base class for transaction outcomes other than commit."""


class TransactionQueryError(TransactionError):
    """A query inside the transaction failed; the transaction was rolled back."""

    def __init__(self, error: QueryError) -> None:
        self.error = error
        super().__init__(f"Transaction rolled back after query failure: {error}")


class TransactionRolledBackError(TransactionError):
    """The transaction body asked for a rollback."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Transaction rolled back: {reason}")


class Rollback(Exception):  # noqa: N818
    """Raise inside a transaction body to roll it back with ``reason``."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
