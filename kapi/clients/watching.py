"""
Watch-handles: the streams of change events for the watched resources.

A handle owns the underlying HTTP stream. The caller consumes the events
either one by one with :meth:`WatchHandle.next`, or with ``async for``,
and must release the stream with :meth:`WatchHandle.close` (or use the handle
as an async context manager). Closing is possible at any time, also from
other tasks while the consumer is waiting for the next event: the stopper
future closes the HTTP response, which wakes up the consumer with the end
of the stream instead of an error.

The errors in the stream do not crash the consumers' loops: both the ``ERROR``
events from the server and the connectivity failures in the middle of the stream
are delivered as the last event of the stream, with the error in its ``error``.
"""
import asyncio
import dataclasses
import enum
import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any, Generic, TypeVar

import aiohttp

from kapi.clients import codecs, errors, requests
from kapi.structs import bodies
from kapi.utilities import typedefs

_T = TypeVar('_T')


class WatchEventType(str, enum.Enum):
    ADDED = 'ADDED'
    MODIFIED = 'MODIFIED'
    DELETED = 'DELETED'
    BOOKMARK = 'BOOKMARK'
    ERROR = 'ERROR'


@dataclasses.dataclass(frozen=True)
class WatchEvent(Generic[_T]):
    """
    A single change of a watched resource.

    Bookmarks carry only the resource version to continue the watching from,
    not the objects. Errors carry only the error, which is the last event.
    """
    type: WatchEventType
    object: _T | None = None
    resource_version: str | None = None
    error: BaseException | None = None


class WatchHandle(Generic[_T]):

    def __init__(
            self,
            lines: AsyncIterator[Any],
            *,
            stopper: asyncio.Future[Any],
            codec: codecs.PayloadCodec[_T],
            request: requests.Request | None = None,
            logger: typedefs.Logger | None = None,
    ) -> None:
        super().__init__()
        self._lines = lines
        self._stopper = stopper
        self._codec = codec
        self._request = request
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._finished = False
        self._consumers = 0

    def __repr__(self) -> str:
        status = 'closed' if self.closed else 'finished' if self._finished else 'open'
        return f'<{self.__class__.__name__} {self._request or ""} ({status})>'

    def __aiter__(self) -> 'WatchHandle[_T]':
        return self

    async def __anext__(self) -> WatchEvent[_T]:
        event = await self.next()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> 'WatchHandle[_T]':
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._stopper.done()

    async def next(self) -> WatchEvent[_T] | None:
        """
        Wait for the next event; return ``None`` when the stream is over.
        """
        self._consumers += 1
        try:
            while not self._finished and not self.closed:
                try:
                    raw_input = await anext(self._lines)
                except StopAsyncIteration:
                    break
                except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
                    if self.closed:
                        break
                    self._logger.debug(f"Watch-stream failed: {e!r}")
                    self._finished = True
                    return WatchEvent(type=WatchEventType.ERROR, error=e)

                try:
                    event = self._parse(raw_input)
                except Exception as e:  # the callers' codecs can raise anything.
                    self._logger.debug(f"Watch-stream event is unprocessable: {e!r}")
                    self._finished = True
                    return WatchEvent(type=WatchEventType.ERROR, error=e)
                if event is not None:
                    return event
        finally:
            self._consumers -= 1

        self._finished = True
        return None

    def close(self) -> None:
        """
        Release the stream. Safe to call repeatedly and from other tasks.
        """
        if not self._stopper.done():
            self._stopper.set_result(None)

    async def aclose(self) -> None:
        """
        Release the stream and wait until its resources are freed.
        """
        self.close()
        self._finished = True
        aclose = getattr(self._lines, 'aclose', None)
        if aclose is not None and not self._consumers:
            await aclose()

    def _parse(self, raw_input: Any) -> WatchEvent[_T] | None:
        if not isinstance(raw_input, Mapping):
            raise ValueError(f"The watch-event is not an object: {raw_input!r}")
        raw_type = raw_input.get('type')
        raw_object = raw_input.get('object') or {}
        if not isinstance(raw_object, Mapping):
            raise ValueError(f"The watch-event's object is not an object: {raw_input!r}")
        resource_version = bodies.get_resource_version(raw_object)

        if raw_type == 'ERROR':
            self._finished = True
            error = errors.from_status(raw_object, request=self._request)  # type: ignore[arg-type]
            self._logger.debug(f"Error in the watch-stream: {raw_object}")
            return WatchEvent(type=WatchEventType.ERROR, error=error)

        if raw_type == 'BOOKMARK':
            return WatchEvent(type=WatchEventType.BOOKMARK, resource_version=resource_version)

        # Ensure that the event is something we understand and can handle.
        if raw_type not in ['ADDED', 'MODIFIED', 'DELETED']:
            self._logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
            return None

        return WatchEvent(
            type=WatchEventType(raw_type),
            object=self._codec.decode(raw_object),
            resource_version=resource_version,
        )
