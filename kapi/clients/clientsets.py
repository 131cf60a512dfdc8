"""
Clientsets: the per-server entry points to the resource clients.

A clientset owns the executor (and so the HTTP session) of one API server,
and hands out the resource clients bound to specific resources & namespaces.
The resource clients are cheap and stateless, so they are created on demand
and never cached: all of them share the clientset's executor.
"""
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, overload

from kapi.clients import api, codecs, params as params_, resources as resources_
from kapi.engines import polling
from kapi.structs import bodies, configuration, credentials, references
from kapi.utilities import typedefs

_T = TypeVar('_T')


class Clientset:

    def __init__(
            self,
            executor: api.Executor,
            settings: configuration.ClientSettings | None = None,
            *,
            logger: typedefs.Logger | None = None,
    ) -> None:
        super().__init__()
        self.executor = executor
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.logger = logger

    @classmethod
    def connect(
            cls,
            info: credentials.ConnectionInfo,
            settings: configuration.ClientSettings | None = None,
            *,
            logger: typedefs.Logger | None = None,
    ) -> 'Clientset':
        """
        Create a clientset with its own HTTP session to the specified server.

        Must be called inside of a running event loop, as the session is bound to it.
        """
        settings = settings if settings is not None else configuration.ClientSettings()
        executor = api.APIExecutor.connect(info, settings=settings, logger=logger)
        return cls(executor, settings, logger=logger)

    async def close(self) -> None:
        close = getattr(self.executor, 'close', None)
        if close is not None:
            await close()

    async def poll(
            self,
            condition: Callable[[], Awaitable[_T] | _T],
            *,
            interval: float | None = None,
            timeout: float | None = None,
    ) -> _T:
        """ Await an eventually consistent condition with this clientset's polling defaults. """
        return await polling.poll(condition, interval=interval, timeout=timeout,
                                  settings=self.settings.polling)

    async def __aenter__(self) -> 'Clientset':
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    @overload
    def resources(
            self,
            resource: references.Resource,
            namespace: references.Namespace = None,
    ) -> resources_.ResourceClient[bodies.RawBody]: ...

    @overload
    def resources(
            self,
            resource: references.Resource,
            namespace: references.Namespace = None,
            *,
            codec: codecs.PayloadCodec[_T],
            params: params_.ParameterCodec | None = None,
    ) -> resources_.ResourceClient[_T]: ...

    def resources(
            self,
            resource: references.Resource,
            namespace: references.Namespace = None,
            *,
            codec: codecs.PayloadCodec[Any] | None = None,
            params: params_.ParameterCodec | None = None,
    ) -> resources_.ResourceClient[Any]:
        """
        Get a client for a resource in a namespace.

        Without a namespace, the client serves the cluster-wide collections
        of the namespaced resources (e.g. for listing or watching).
        """
        return resources_.ResourceClient(
            self.executor,
            resource,
            namespace,
            codec=codec,
            params=params if params is not None else params_.DEFAULT_CODEC,
            logger=self.logger,
        )
