"""
API errors.

The underlying client library (now, ``aiohttp``) can be replaced in the future.
We cannot rely on embedding its exceptions all over the code and in the callers.
Hence, we have our own hierarchy of exceptions for the API errors.

Low-level errors, such as the network connectivity issues, SSL/HTTPS issues,
timeouts, etc, are escalated from the client library as is, since they are
related not to the domain of the API, but rather to the networking and encryption.

The original errors of the client library are chained as the causes of our own
specialised errors -- for better explainability of errors in the stack traces.

Some selected statuses of the API errors are made into their own classes,
so that they could be intercepted with ``except:`` clauses. The predicates
(:func:`is_not_found`, :func:`is_forbidden`, etc.) are for the cases when
the errors are received as values, e.g. in the watch-streams.

Unlike the underlying client library's errors, the API errors contain more
information about the reasons -- as provided by the API in its response bodies,
not guessed only by HTTP statuses alone -- and the identity of the resource
which was addressed (as known from the request).
"""
import collections.abc
import json
from collections.abc import Collection
from typing import TYPE_CHECKING

import aiohttp
from typing_extensions import Literal, TypedDict

if TYPE_CHECKING:
    from kapi.clients import requests
    from kapi.structs import references


class RawStatusCause(TypedDict):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict, total=False):
    name: str
    uid: str
    retryAfterSeconds: int
    kind: str
    group: str
    causes: Collection[RawStatusCause]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.19/#status-v1-meta
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):

    def __init__(
            self,
            payload: RawStatus | None,
            *,
            status: int,
            request: 'requests.Request | None' = None,
    ) -> None:
        message = payload.get('message') if payload else None
        super().__init__(message, payload)
        self._status = status
        self._payload = payload
        self._request = request

    def __str__(self) -> str:
        what = f'{self.resource!r}' if self.resource is not None else 'API'
        what += f' {self.namespace}/{self.name}' if self.namespace and self.name else ''
        what += f' {self.name}' if self.name and not self.namespace else ''
        what += f' in {self.namespace!r}' if self.namespace and not self.name else ''
        return f'({self.status}) {self.reason or "Failure"}: {what}: {self.message or "no message"}'

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> int | None:
        return self._payload.get('code') if self._payload else None

    @property
    def reason(self) -> str | None:
        return self._payload.get('reason') if self._payload else None

    @property
    def message(self) -> str | None:
        return self._payload.get('message') if self._payload else None

    @property
    def details(self) -> RawStatusDetails | None:
        return self._payload.get('details') if self._payload else None

    @property
    def request(self) -> 'requests.Request | None':
        return self._request

    @property
    def resource(self) -> 'references.Resource | None':
        return self._request.resource if self._request is not None else None

    @property
    def namespace(self) -> str | None:
        return self._request.namespace if self._request is not None else None

    @property
    def name(self) -> str | None:
        if self._request is not None and self._request.name is not None:
            return self._request.name
        return self.details.get('name') if self.details else None


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIBadRequestError(APIClientError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


class APIGoneError(APIClientError):
    pass


class APIInvalidError(APIClientError):
    pass


class APITooManyRequestsError(APIClientError):
    pass


def error_class(status: int) -> type[APIError]:
    return (
        APIBadRequestError if status == 400 else
        APIUnauthorizedError if status == 401 else
        APIForbiddenError if status == 403 else
        APINotFoundError if status == 404 else
        APIConflictError if status == 409 else
        APIGoneError if status == 410 else
        APIInvalidError if status == 422 else
        APITooManyRequestsError if status == 429 else
        APIClientError if 400 <= status < 500 else
        APIServerError if 500 <= status < 600 else
        APIError
    )


def from_status(
        payload: RawStatus,
        *,
        request: 'requests.Request | None' = None,
) -> APIError:
    """
    Convert a status envelope (e.g. of an ``ERROR`` watch-event) into an error.
    """
    status = payload.get('code') or 500
    cls = error_class(status)
    return cls(payload, status=status, request=request)


def is_not_found(exc: BaseException | None) -> bool:
    return isinstance(exc, APINotFoundError) or _has_reason(exc, 'NotFound')


def is_forbidden(exc: BaseException | None) -> bool:
    return isinstance(exc, APIForbiddenError) or _has_reason(exc, 'Forbidden')


def is_unauthorized(exc: BaseException | None) -> bool:
    return isinstance(exc, APIUnauthorizedError) or _has_reason(exc, 'Unauthorized')


def is_conflict(exc: BaseException | None) -> bool:
    return isinstance(exc, APIConflictError) or _has_reason(exc, 'Conflict')


def is_invalid(exc: BaseException | None) -> bool:
    return isinstance(exc, APIInvalidError) or _has_reason(exc, 'Invalid')


def is_gone(exc: BaseException | None) -> bool:
    return isinstance(exc, APIGoneError) or _has_reason(exc, 'Gone') or _has_reason(exc, 'Expired')


def is_server_error(exc: BaseException | None) -> bool:
    return isinstance(exc, APIServerError)


def _has_reason(exc: BaseException | None, reason: str) -> bool:
    return isinstance(exc, APIError) and exc.reason == reason


async def check_response(
        response: aiohttp.ClientResponse,
        *,
        request: 'requests.Request | None' = None,
) -> None:
    """
    Check for specialised API errors, and raise with extended information.
    """
    if response.status >= 400:

        # Read the response's body before it is closed by raise_for_status().
        payload: RawStatus | None
        try:
            payload = await response.json(content_type=None)
        except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
            payload = None

        # Better be safe: who knows which sensitive information can be dumped unless kind==Status.
        if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
            payload = None

        cls = error_class(response.status)

        # Raise the client-specific error while keeping the original error in scope.
        # This call also closes the response's body, so it cannot be read afterwards.
        try:
            response.raise_for_status()
        except aiohttp.ClientResponseError as e:
            raise cls(payload, status=response.status, request=request) from e
