"""
Payload codecs: converting the callers' objects to/from the request/response bodies.

The resource clients do not know the resource-specific schemas. They only need
to turn an object into a JSON-serialisable body and back. By default, the objects
are the raw dicts as they come from the API (:class:`RawCodec`). Typed models
(dataclasses, pydantic models, etc.) are plugged in via :class:`TypedCodec`.

Both directions produce new objects: the callers own the results exclusively,
and the callers' objects are never modified by the client.
"""
import copy
from collections.abc import Callable, Mapping
from typing import Any, Generic, Protocol, TypeVar

from kapi.structs import bodies

_T = TypeVar('_T')


class PayloadCodec(Protocol[_T]):
    def encode(self, obj: _T) -> Mapping[str, Any]: ...
    def decode(self, raw: Mapping[str, Any]) -> _T: ...


class RawCodec:
    """ The objects are the JSON-decoded dicts as is (deep-copied). """

    def encode(self, obj: Mapping[str, Any]) -> Mapping[str, Any]:
        return copy.deepcopy(dict(obj))

    def decode(self, raw: Mapping[str, Any]) -> bodies.RawBody:
        return copy.deepcopy(dict(raw))  # type: ignore[return-value]


class TypedCodec(Generic[_T]):
    """
    The objects are converted by the provided functions.

    For example, with dataclasses::

        codec = TypedCodec(load=lambda raw: Build(**raw), dump=dataclasses.asdict)
    """

    def __init__(
            self,
            *,
            load: Callable[[Mapping[str, Any]], _T],
            dump: Callable[[_T], Mapping[str, Any]],
    ) -> None:
        super().__init__()
        self._load = load
        self._dump = dump

    def encode(self, obj: _T) -> Mapping[str, Any]:
        return self._dump(obj)

    def decode(self, raw: Mapping[str, Any]) -> _T:
        return self._load(copy.deepcopy(dict(raw)))


RAW_CODEC = RawCodec()
