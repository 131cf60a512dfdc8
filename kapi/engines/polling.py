"""
Polling for the eventually consistent conditions.

Some changes are not visible in the API immediately after they are made:
e.g. the authorization policies are cached by the server for a while,
so a revoked permission still works for some time. The callers await
such conditions by re-checking them periodically within a time limit.
"""
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from kapi.structs import configuration

logger = logging.getLogger(__name__)

_T = TypeVar('_T')


class PollTimeoutError(asyncio.TimeoutError):
    """ The condition did not become true in time. """


async def poll(
        condition: Callable[[], Awaitable[_T] | _T],
        *,
        interval: float | None = None,
        timeout: float | None = None,
        settings: configuration.PollingSettings | None = None,
) -> _T:
    """
    Re-check the condition until it is truthy; return its truthy result.

    The condition can be a regular or an async function. Its errors are not
    suppressed, so the conditions decide themselves which errors mean "not yet"
    (by returning a falsy value) and which errors are fatal (by raising).

    The condition is checked at least once, even with a zero timeout.
    """
    settings = settings if settings is not None else configuration.PollingSettings()
    interval = interval if interval is not None else settings.interval
    timeout = timeout if timeout is not None else settings.timeout

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempt = 0
    while True:
        attempt += 1
        result = condition()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return result  # type: ignore[return-value]

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise PollTimeoutError(f"The condition is not met in {timeout}s after {attempt} attempt(s).")
        logger.debug(f"The condition is not met yet (attempt #{attempt}); re-checking.")
        await asyncio.sleep(min(interval, remaining))
