from __future__ import annotations

from collections.abc import Awaitable, Callable, Coroutine
from functools import wraps
from typing import TYPE_CHECKING, ParamSpec, TypeAlias, TypeVar, cast

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    after_nothing,
    before_nothing,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .config import RetryConfig

if TYPE_CHECKING:
    from tenacity.retry import retry_base

P = ParamSpec("P")
R = TypeVar("R")

RetryCallback: TypeAlias = Callable[[RetryCallState], Awaitable[None] | None]


class RetryLogicError(RuntimeError): ...


class Retry:
    """Decorator retrying an async function per `RetryConfig`.

    The last exception is re-raised once attempts are exhausted.
    """

    def __init__(
        self,
        config: RetryConfig,
        before: RetryCallback | None = None,
        after: RetryCallback | None = None,
        before_sleep: RetryCallback | None = None,
    ) -> None:
        self._config = config
        self._before = before
        self._after = after
        self._before_sleep = before_sleep
        self._stop = stop_after_attempt(config.max_attempts)
        self._wait = wait_random_exponential(
            multiplier=config.multiplier,
            min=config.wait_min,
            max=config.wait_max,
            exp_base=config.exp_base,
        )
        self._retry_condition = self._build_retry_condition(config)

    def _build_retry_condition(self, config: RetryConfig) -> retry_base:
        if config.retry_on_exceptions:
            condition: retry_base = retry_if_exception_type(config.retry_on_exceptions)
        else:
            condition = retry_if_exception_type(Exception)

        if config.never_retry_on:
            condition = condition & retry_if_not_exception_type(config.never_retry_on)

        return condition

    def __call__(
        self, func: Callable[P, Coroutine[object, object, R]]
    ) -> Callable[P, Coroutine[object, object, R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            async for attempt in AsyncRetrying(
                stop=self._stop,
                wait=self._wait,
                retry=self._retry_condition,
                before=cast(RetryCallback, self._before or before_nothing),
                after=cast(RetryCallback, self._after or after_nothing),
                before_sleep=self._before_sleep,
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)

            raise RetryLogicError("Async retry loop completed without success or failure")

        return wrapper


def retry(
    config: RetryConfig | None = None,
    before: RetryCallback | None = None,
    after: RetryCallback | None = None,
    before_sleep: RetryCallback | None = None,
) -> Retry:
    return Retry(config or RetryConfig(), before, after, before_sleep)
