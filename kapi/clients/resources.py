"""
Resource clients: the typed operations on one resource kind in one namespace.

A resource client is bound to a resource and a namespace (``None`` for
cluster-scoped resources or for cluster-wide collections), and holds no other
state but its stateless collaborators: an executor, a payload codec,
a parameter codec, a logger. It can be shared across tasks freely.

Every operation builds a new request from scratch, executes it, and decodes
the response into a new object owned by the caller. Nothing is retried or
interpreted here: the API errors are escalated as they come from the executor.

The updates are full-replace: the caller sends the whole object with the
resource version it has previously read, and the server resolves the conflicts.
Partial updates are only possible via patching.
"""
import asyncio
import dataclasses
from collections.abc import Mapping
from typing import Any, Generic, TypeVar, cast

from kapi.clients import api, codecs, params, requests, watching
from kapi.engines import loggers
from kapi.structs import bodies, options, references
from kapi.utilities import typedefs

_T = TypeVar('_T')


@dataclasses.dataclass(frozen=True)
class ResourceList(Generic[_T]):
    items: list[_T]
    resource_version: str | None = None
    continue_token: str | None = None
    remaining_item_count: int | None = None


class ResourceClient(Generic[_T]):

    def __init__(
            self,
            executor: api.Executor,
            resource: references.Resource,
            namespace: references.Namespace = None,
            *,
            codec: codecs.PayloadCodec[_T] | None = None,
            params: params.ParameterCodec = params.DEFAULT_CODEC,
            logger: typedefs.Logger | None = None,
    ) -> None:
        super().__init__()
        if not resource.namespaced and namespace is not None:
            raise ValueError(f"Specific namespaces are not supported for cluster-scoped {resource!r}.")
        self.executor = executor
        self.resource = resource
        self.namespace = namespace
        self._codec = cast(codecs.PayloadCodec[_T], codec if codec is not None else codecs.RAW_CODEC)
        self._params = params
        self._logger = loggers.ResourceLogger(
            resource=resource,
            namespace=namespace,
            base=logger.logger if isinstance(logger, typedefs.LoggerAdapter) else logger,
        )

    def __repr__(self) -> str:
        where = f'in {self.namespace!r}' if self.namespace is not None else 'cluster-wide'
        return f'<{self.__class__.__name__} {self.resource!r} {where}>'

    def _builder(self) -> requests.RequestBuilder:
        return requests.RequestBuilder().resource(self.resource).namespace(self.namespace)

    def _encode(self, obj: _T) -> tuple[Mapping[str, Any], str]:
        body = self._codec.encode(obj)
        name = bodies.get_name(body)
        if not name:
            raise ValueError(f"The object has no name in the metadata: {body!r}")
        return body, name

    def _decode(self, raw: Any, request: requests.Request) -> _T:
        if not isinstance(raw, Mapping):
            raise ValueError(f"The API returned no object for {request}: {raw!r}")
        return self._codec.decode(raw)

    async def create(self, obj: _T) -> _T:
        """
        Create the object. Return the server's representation of it.
        """
        body = self._codec.encode(obj)
        request = self._builder().post().body(body).build()
        self._logger.named(bodies.get_name(body)).debug(f"Creating {self.resource!r}.")
        raw = await self.executor.execute(request)
        return self._decode(raw, request)

    async def update(self, obj: _T) -> _T:
        """
        Replace the object as a whole. Return the server's representation of it.

        The status is not updated this way if the resource has a status subresource:
        use :meth:`update_status` for that.
        """
        body, name = self._encode(obj)
        request = self._builder().put().name(name).body(body).build()
        self._logger.named(name).debug(f"Updating {self.resource!r}.")
        raw = await self.executor.execute(request)
        return self._decode(raw, request)

    async def update_status(self, obj: _T) -> _T:
        return await self.update_subresource('status', obj)

    async def update_subresource(self, subresource: str, obj: _T) -> _T:
        """
        Replace the object via its subresource, e.g. via ``status``.

        The whole object is sent, but only the subresource's fields are honored.
        """
        body, name = self._encode(obj)
        request = self._builder().put().name(name).subresource(subresource).body(body).build()
        self._logger.named(name).debug(f"Updating {self.resource!r} via {subresource!r}.")
        raw = await self.executor.execute(request)
        return self._decode(raw, request)

    async def delete(
            self,
            name: str,
            options: options.DeleteOptions | None = None,
    ) -> None:
        options = options if options is not None else _DeleteOptions()
        request = self._builder().delete().name(name).body(options.as_body()).build()
        self._logger.named(name).debug(f"Deleting {self.resource!r}.")
        await self.executor.execute(request)

    async def delete_collection(
            self,
            options: options.DeleteOptions | None = None,
            list_options: options.ListOptions | None = None,
    ) -> None:
        """
        Delete all objects matching the criteria (or all objects if no criteria).

        The deletion options go to the body, the listing options go to the query.
        """
        options = options if options is not None else _DeleteOptions()
        list_options = list_options if list_options is not None else _ListOptions()
        request = (self._builder()
                   .delete()
                   .versioned_params(list_options, self._params)
                   .body(options.as_body())
                   .build())
        self._logger.debug(f"Deleting a collection of {self.resource!r}.")
        await self.executor.execute(request)

    async def get(
            self,
            name: str,
            options: options.GetOptions | None = None,
    ) -> _T:
        options = options if options is not None else _GetOptions()
        request = self._builder().get().name(name).versioned_params(options, self._params).build()
        self._logger.named(name).debug(f"Getting {self.resource!r}.")
        raw = await self.executor.execute(request)
        return self._decode(raw, request)

    async def list(
            self,
            options: options.ListOptions | None = None,
    ) -> ResourceList[_T]:
        """
        List the objects matching the criteria (or all objects if no criteria).

        The items of the lists have no ``kind`` & ``apiVersion`` as served by
        the API, so they are restored from the list's envelope before decoding.
        """
        options = options if options is not None else _ListOptions()
        request = self._builder().get().versioned_params(options, self._params).build()
        self._logger.debug(f"Listing {self.resource!r}.")
        raw = await self.executor.execute(request)
        if not isinstance(raw, Mapping):
            raise ValueError(f"The API returned no list for {request}: {raw!r}")

        kind: str | None = raw.get('kind')
        item_kind = kind[:-4] if kind is not None and kind.endswith('List') else kind
        items: list[_T] = []
        for item in raw.get('items') or []:
            item = dict(item)  # shallow: only the top-level keys are added.
            if item_kind:
                item.setdefault('kind', item_kind)
            if 'apiVersion' in raw:
                item.setdefault('apiVersion', raw['apiVersion'])
            items.append(self._codec.decode(item))

        meta = raw.get('metadata') or {}
        return ResourceList(
            items=items,
            resource_version=meta.get('resourceVersion'),
            continue_token=meta.get('continue') or None,
            remaining_item_count=meta.get('remainingItemCount'),
        )

    async def watch(
            self,
            options: options.ListOptions | None = None,
    ) -> watching.WatchHandle[_T]:
        """
        Start watching the objects matching the criteria.

        The returned handle owns the stream and must be closed by the caller.
        The errors of starting the stream are raised here; the errors
        in the middle of the stream are delivered as the stream's last event.
        """
        options = dataclasses.replace(options if options is not None else _ListOptions(), watch=True)
        request = self._builder().get().versioned_params(options, self._params).watch().build()
        self._logger.debug(f"Watching {self.resource!r}.")
        stopper: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        lines = await self.executor.stream(request, stopper=stopper)
        return watching.WatchHandle(
            lines,
            stopper=stopper,
            codec=self._codec,
            request=request,
            logger=self._logger,
        )

    async def patch(
            self,
            name: str,
            patch_type: options.PatchType,
            data: bytes | str,
            *subresources: str,
    ) -> _T:
        """
        Patch the object (or its subresource) with the raw patch of a specific type.

        The patch is not interpreted or validated here: the same bytes mean
        different changes for different patch types, and it is up to the server.
        """
        data = data.encode('utf-8') if isinstance(data, str) else bytes(data)
        request = (self._builder()
                   .patch(patch_type)
                   .name(name)
                   .subresource(*subresources)
                   .body(data)
                   .build())
        self._logger.named(name).debug(f"Patching {self.resource!r} with {request.content_type}.")
        raw = await self.executor.execute(request)
        return self._decode(raw, request)


# Aliases, since the arguments named `options` shadow the module in the methods.
_DeleteOptions = options.DeleteOptions
_GetOptions = options.GetOptions
_ListOptions = options.ListOptions
