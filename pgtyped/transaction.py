from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import QueryError, Rollback, TransactionQueryError, TransactionRolledBackError
from .logger import get_logger

if TYPE_CHECKING:
    from .connection import Connection
    from .driver import IsolationLevel

logger = get_logger(__name__)

T = TypeVar("T")


async def atransaction(
    connection: Connection,
    callback: Callable[[Connection], Awaitable[T]],
    *,
    isolation: IsolationLevel = "read_committed",
    readonly: bool = False,
    deferrable: bool = False,
) -> T:
    """Run ``callback`` inside a transaction.

    The callback receives a connection bound to the transaction; queries run
    against it with `aexecute` take part in the transaction.

    Parameters
    ----------
    connection
        Pool connection (or a transaction-scoped one, which nests).
    callback
        Transaction body.
    isolation
        Transaction isolation level.
    readonly
        If True, the transaction is read-only.
    deferrable
        If True and readonly=True, allows deferrable transactions.

    Returns
    -------
    T
        The callback's return value, once the transaction has committed.

    Raises
    ------
    TransactionRolledBackError
        The callback raised `Rollback`.
    TransactionQueryError
        A query inside the callback, or the commit itself, failed.

    Any other exception raised by the callback rolls the transaction back
    and propagates unchanged.

    Examples
    --------
    >>> async def transfer(conn: Connection) -> int:
    ...     debited = await aexecute(debit, conn)
    ...     if debited.count == 0:
    ...         raise Rollback("insufficient funds")
    ...     return (await aexecute(credit, conn)).count
    >>> await atransaction(db, transfer)
    """

    async def body(handle: Any) -> T:
        return await callback(connection.scoped(handle))

    try:
        return await connection.driver.atransaction(
            connection.handle,
            body,
            timeout_ms=connection.config.default_timeout,
            isolation=isolation,
            readonly=readonly,
            deferrable=deferrable,
        )
    except Rollback as e:
        logger.info("Transaction rolled back", reason=e.reason)
        raise TransactionRolledBackError(e.reason) from e
    except QueryError as e:
        logger.warning("Transaction rolled back after query failure", error_kind=e.kind, error=str(e))
        raise TransactionQueryError(e) from e
