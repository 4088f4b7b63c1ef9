"""Connections handed to `aexecute` and `atransaction`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from .driver import AsyncpgDriver
from .logger import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from .config import Config
    from .driver import Driver

logger = get_logger(__name__)


class Connection:
    """A pool, or a single connection inside a transaction.

    The driver handle is opaque to pgtyped; a `Connection` only pairs it with
    the driver that produced it and the configuration it was created from.

    Examples
    --------
    >>> async with await aconnect(default_config()) as db:
    ...     returned = await aexecute(query("SELECT 1"), db)
    """

    __slots__ = ("_config", "_driver", "_handle", "_in_transaction")

    def __init__(self, config: Config, driver: Driver, handle: Any, *, in_transaction: bool = False) -> None:
        self._config = config
        self._driver = driver
        self._handle = handle
        self._in_transaction = in_transaction

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "Connection context manager exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await adisconnect(self)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def handle(self) -> Any:
        return self._handle

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def scoped(self, handle: Any) -> Connection:
        """Connection bound to a transaction-scoped driver handle."""
        return Connection(self._config, self._driver, handle, in_transaction=True)


async def aconnect(config: Config, driver: Driver | None = None) -> Connection:
    """Start a connection pool for ``config``.

    Parameters
    ----------
    config
        Pool configuration. It is not used again after this call except for
        per-query settings (timeout, row shape, tracing).
    driver
        Driver to start the pool with. Defaults to `AsyncpgDriver`.

    Returns
    -------
    Connection
        Pool connection, usable as an async context manager that disconnects
        on exit.
    """
    driver = driver or AsyncpgDriver()
    handle = await driver.aconnect(config)
    return Connection(config, driver, handle)


async def adisconnect(connection: Connection) -> None:
    """Close every connection of the pool.

    Transaction-scoped connections do not own the pool; disconnecting one does
    nothing.
    """
    if connection.in_transaction:
        logger.warning("Ignoring disconnect of a transaction-scoped connection")
        return
    await connection.driver.adisconnect(connection.handle)
