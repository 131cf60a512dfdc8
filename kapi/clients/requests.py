"""
Assembling the API requests from their discrete facets.

The builder is an immutable value: every facet returns a new builder,
so a partially built builder (e.g. with a resource and a namespace) can be
shared across tasks and re-used as a template without any locking.
The order of the facets does not matter: everything is resolved in
:meth:`RequestBuilder.build`, which also validates the combination.

The builder performs no I/O. The result is a :class:`Request` -- a complete
description of one HTTP request, which is then given to an executor
(see :mod:`kapi.clients.api`).
"""
import dataclasses
import urllib.parse

from kapi.clients import params as params_
from kapi.structs import options, references

VERBS = frozenset({'GET', 'POST', 'PUT', 'PATCH', 'DELETE'})

# Separate names because of the same-named methods of the builder.
_ParameterCodec = params_.ParameterCodec
_Resource = references.Resource
_Namespace = references.Namespace


@dataclasses.dataclass(frozen=True)
class Request:
    """
    A fully formed description of one API request.

    The identity fields (resource, namespace, name, subresources) are not used
    in the HTTP request directly (they are already in the path), but are kept
    for error reporting and logging.
    """
    method: str
    path: str
    params: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()
    body: object | None = None
    streaming: bool = False

    resource: _Resource | None = None
    namespace: _Namespace = None
    name: str | None = None
    subresources: tuple[str, ...] = ()

    @property
    def url(self) -> str:
        """ The relative URL (the path & the query), as used against the API root. """
        query = urllib.parse.urlencode(self.params, encoding='utf-8')
        return self.path + ('?' if query else '') + query

    @property
    def content_type(self) -> str | None:
        return dict(self.headers).get('Content-Type')

    def __str__(self) -> str:
        return f'{self.method} {self.url}'


@dataclasses.dataclass(frozen=True)
class RequestBuilder:
    """
    An immutable builder of :class:`Request`.

    Usage::

        request = (RequestBuilder()
                   .get()
                   .resource(builds)
                   .namespace('ns1')
                   .name('build-1')
                   .build())
    """
    _verb: str | None = None
    _resource: _Resource | None = None
    _namespace: _Namespace = None
    _name: str | None = None
    _subresources: tuple[str, ...] = ()
    _body: object | None = None
    _options: tuple[tuple[object, _ParameterCodec], ...] = ()
    _params: tuple[tuple[str, str], ...] = ()
    _headers: tuple[tuple[str, str], ...] = ()
    _patch_type: options.PatchType | None = None
    _watch: bool = False

    def verb(self, verb: str) -> 'RequestBuilder':
        if verb.upper() not in VERBS:
            raise ValueError(f"Unsupported verb: {verb!r}. Use one of: {', '.join(sorted(VERBS))}.")
        return dataclasses.replace(self, _verb=verb.upper())

    def get(self) -> 'RequestBuilder':
        return self.verb('GET')

    def post(self) -> 'RequestBuilder':
        return self.verb('POST')

    def put(self) -> 'RequestBuilder':
        return self.verb('PUT')

    def delete(self) -> 'RequestBuilder':
        return self.verb('DELETE')

    def patch(self, patch_type: options.PatchType) -> 'RequestBuilder':
        return dataclasses.replace(self.verb('PATCH'), _patch_type=options.PatchType(patch_type))

    def resource(self, resource: _Resource) -> 'RequestBuilder':
        return dataclasses.replace(self, _resource=resource)

    def namespace(self, namespace: _Namespace) -> 'RequestBuilder':
        return dataclasses.replace(self, _namespace=namespace)

    def name(self, name: str | None) -> 'RequestBuilder':
        return dataclasses.replace(self, _name=name)

    def subresource(self, *subresources: str) -> 'RequestBuilder':
        return dataclasses.replace(self, _subresources=self._subresources + tuple(subresources))

    def body(self, body: object | None) -> 'RequestBuilder':
        return dataclasses.replace(self, _body=body)

    def versioned_params(self, opts: object, codec: _ParameterCodec) -> 'RequestBuilder':
        """
        Add the typed options to be encoded as query parameters.

        The encoding is postponed until the request is built, since it depends
        on the resource's API version, which can be set after the options.
        """
        return dataclasses.replace(self, _options=self._options + ((opts, codec),))

    def param(self, key: str, value: str) -> 'RequestBuilder':
        return dataclasses.replace(self, _params=self._params + ((key, value),))

    def header(self, key: str, value: str) -> 'RequestBuilder':
        return dataclasses.replace(self, _headers=self._headers + ((key, value),))

    def watch(self) -> 'RequestBuilder':
        """ Mark the request as a long-lived stream of events instead of a single response. """
        return dataclasses.replace(self, _watch=True)

    def build(self) -> Request:
        verb = self._verb
        resource = self._resource
        namespace = self._namespace
        name = self._name

        if verb is None:
            raise ValueError("The verb is not set.")
        if resource is None:
            raise ValueError("The resource is not set.")
        for segment in [namespace, name, *self._subresources]:
            if segment is not None and (not segment or '/' in segment or segment in {'.', '..'}):
                raise ValueError(f"Improper path segment: {segment!r}")
        if self._subresources and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if not resource.namespaced and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if resource.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")
        if self._watch and verb != 'GET':
            raise ValueError(f"Only GET requests can watch, not {verb}.")
        if self._watch and name is not None:
            raise ValueError("Watching is possible only for collections, not for named resources.")
        if verb == 'PATCH' and self._patch_type is None:
            raise ValueError("Patching requires a patch type.")

        query: list[tuple[str, str]] = []
        for opts, codec in self._options:
            query.extend(codec.encode(opts, version=resource.version))
        query.extend(self._params)
        if self._watch and ('watch', 'true') not in query:
            query.append(('watch', 'true'))

        headers: dict[str, str] = {}
        if self._patch_type is not None:
            headers['Content-Type'] = self._patch_type.value
        headers.update(self._headers)

        parts: list[str | None] = [
            resource.api_prefix,
            'namespaces' if namespace is not None else None,
            namespace,
            resource.plural,
            name,
            *self._subresources,
        ]
        path = '/'.join([part for part in parts if part])

        return Request(
            method=verb,
            path=path,
            params=tuple(query),
            headers=tuple(headers.items()),
            body=self._body,
            streaming=self._watch,
            resource=resource,
            namespace=namespace,
            name=name,
            subresources=self._subresources,
        )
