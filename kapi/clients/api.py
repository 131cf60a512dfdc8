"""
Executing the API requests: the transport behind the resource clients.

The resource clients only need something that can execute a request
description and return the parsed response, or stream the parsed lines
of a long-lived response: see :class:`Executor`. The main implementation
is :class:`APIExecutor`, which talks to the API server with ``aiohttp``.

Retrying is the executor's business, not the resource clients': only the
connectivity issues, timeouts, and the server-side errors (HTTP 5xx) are retried
with the configured backoffs. All other API errors are escalated at once.
"""
import asyncio
import collections.abc
import itertools
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import aiohttp

from kapi.clients import auth, errors, requests
from kapi.structs import configuration, credentials
from kapi.utilities import typedefs


class Executor(Protocol):
    """
    A capability to execute the described requests.

    ``execute()`` returns the parsed JSON of the response (``None`` if empty),
    or raises the :class:`kapi.clients.errors.APIError` for the API failures.

    ``stream()`` starts a streaming request (so that its API errors are raised
    immediately), and returns an iterator over the parsed JSON lines until
    the server closes the response, or until the ``stopper`` future is done.
    """

    async def execute(self, request: requests.Request) -> Any: ...

    async def stream(
            self,
            request: requests.Request,
            *,
            stopper: asyncio.Future[Any] | None = None,
    ) -> AsyncIterator[Any]: ...


class APIExecutor:
    """
    An executor that talks to the API server via an aiohttp session.
    """

    def __init__(
            self,
            context: auth.APIContext,
            *,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger | None = None,
    ) -> None:
        super().__init__()
        self.context = context
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    @classmethod
    def connect(
            cls,
            info: credentials.ConnectionInfo,
            *,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger | None = None,
    ) -> 'APIExecutor':
        return cls(auth.APIContext(info), settings=settings, logger=logger)

    async def close(self) -> None:
        await self.context.close()

    async def request(
            self,
            request: requests.Request,
            *,
            timeout: aiohttp.ClientTimeout | None = None,
    ) -> aiohttp.ClientResponse:
        """
        Perform the request and check its status, but do not parse the response.
        """
        settings = self.settings
        url = request.url
        if '://' not in url:
            url = self.context.server.rstrip('/') + '/' + url.lstrip('/')

        if timeout is None:
            timeout = aiohttp.ClientTimeout(
                total=settings.networking.request_timeout,
                sock_connect=settings.networking.connect_timeout,
            )

        kwargs: dict[str, Any] = {}
        if isinstance(request.body, (bytes, bytearray)):
            kwargs['data'] = bytes(request.body)
        elif request.body is not None:
            kwargs['json'] = request.body

        backoffs = settings.networking.error_backoffs
        backoffs = backoffs if isinstance(backoffs, collections.abc.Iterable) else [backoffs]
        count = len(backoffs) + 1 if isinstance(backoffs, collections.abc.Sized) else None
        backoff: float | None
        for retry, backoff in enumerate(itertools.chain(backoffs, [None]), start=1):
            idx = f"#{retry}/{count}" if count is not None else f"#{retry}"
            what = f"{request.method} {url}"
            try:
                if retry > 1:
                    self.logger.debug(f"Request attempt {idx}: {what}")

                response = await self.context.session.request(
                    method=request.method,
                    url=url,
                    headers=dict(request.headers),
                    timeout=timeout,
                    **kwargs,
                )
                await errors.check_response(response, request=request)  # but do not parse it!

            except (aiohttp.ClientConnectionError, errors.APIServerError, asyncio.TimeoutError) as e:
                if backoff is None:  # i.e. the last or the only attempt.
                    self.logger.error(f"Request attempt {idx} failed; escalating: {what} -> {e!r}")
                    raise
                else:
                    self.logger.error(f"Request attempt {idx} failed; will retry: {what} -> {e!r}")
                    await asyncio.sleep(backoff)  # non-awakable! but still cancellable.
            else:
                if retry > 1:
                    self.logger.debug(f"Request attempt {idx} succeeded: {what}")
                return response

        raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.

    async def execute(self, request: requests.Request) -> Any:
        response = await self.request(request)
        async with response:
            data = await response.read()
        return json.loads(data.decode('utf-8')) if data.strip() else None

    async def stream(
            self,
            request: requests.Request,
            *,
            stopper: asyncio.Future[Any] | None = None,
    ) -> AsyncIterator[Any]:
        watching = self.settings.watching
        networking = self.settings.networking
        connect_timeout = (
            watching.connect_timeout if watching.connect_timeout is not None else
            networking.connect_timeout if networking.connect_timeout is not None else
            networking.request_timeout
        )
        response = await self.request(request, timeout=aiohttp.ClientTimeout(
            total=watching.client_timeout,
            sock_connect=connect_timeout,
        ))
        # Attach the closing before the iteration: the stream can be released before consumed.
        if stopper is not None:
            stopper.add_done_callback(lambda _: response.close())
        return iter_response(response, stopper=stopper)


async def iter_response(
        response: aiohttp.ClientResponse,
        *,
        stopper: asyncio.Future[Any] | None = None,
) -> AsyncIterator[Any]:
    """
    Parse the lines of a streaming response until it is closed on either side.
    """
    try:
        async with response:
            async for line in iter_jsonlines(response.content):
                yield json.loads(line.decode('utf-8'))
    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError):
        if stopper is not None and stopper.done():
            pass
        else:
            raise


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Iterate line by line over the response's content.

    Usage::

        async for line in iter_jsonlines(response.content):
            pass

    This is an equivalent of::

        async for line in response.content:
            pass

    Except that the aiohttp's line iteration fails if the accumulated buffer
    length is above 2**17 bytes, i.e. 128 KB (`aiohttp.streams.DEFAULT_LIMIT`
    for the buffer's low-watermark, multiplied by 2 for the high-watermark).
    The objects' fields can be much longer, up to MBs in length.

    The chunk size of 1MB is an empirical guess for keeping the memory footprint
    reasonably low on huge amount of small lines (limited to 1 MB in total),
    while ensuring the near-instant reads of the huge lines (can be a problem
    with a small chunk size due to too many iterations).
    """

    # Minimize the memory footprint by keeping at most 2 copies of a yielded line in memory
    # (in the buffer and as a yielded value), and at most 1 copy of other lines (in the buffer).
    buffer = b''
    async for data in content.iter_chunked(chunk_size):
        buffer += data
        del data

        start = 0
        index = buffer.find(b'\n', start)
        while index >= 0:
            line = buffer[start:index]
            if line.strip():
                yield line
            del line
            start = index + 1
            index = buffer.find(b'\n', start)

        if start > 0:
            buffer = buffer[start:]

    if buffer.strip():
        yield buffer
