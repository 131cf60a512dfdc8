"""
Encoding of the typed options into the URL's query parameters.

The options are dataclasses (see :mod:`kapi.structs.options`). Their fields
declare the query parameter names in the metadata. The codecs can re-map
or drop the parameters for specific API versions, so that the same request
builder serves multiple API versions without hard-coding the names.
"""
import dataclasses
import enum
from collections.abc import Mapping, Sequence
from typing import Protocol

from kapi.structs import options as options_

QueryParams = Sequence[tuple[str, str]]


class ParameterCodec(Protocol):
    def encode(self, options: object, *, version: str) -> QueryParams: ...


class QueryParameterCodec:
    """
    A version-aware encoder of the options' dataclasses into query parameters.

    The renames are per API version: ``{'v1beta1': {'limit': None}}`` drops
    the ``limit`` parameter for the ``v1beta1`` resources; a string value
    renames the parameter instead. Unset values (``None`` or ``False``)
    are never sent, so the server's defaults apply.
    """

    def __init__(
            self,
            renames: Mapping[str, Mapping[str, str | None]] | None = None,
    ) -> None:
        super().__init__()
        self._renames = dict(renames or {})

    def encode(self, options: object, *, version: str) -> QueryParams:
        if not dataclasses.is_dataclass(options) or isinstance(options, type):
            raise TypeError(f"Options must be a dataclass instance, got {options!r}.")

        renames = self._renames.get(version, {})
        params: list[tuple[str, str]] = []
        for field in dataclasses.fields(options):
            value = getattr(options, field.name)
            if value is None or value is False:
                continue
            param = options_.get_param_name(field)
            param = renames.get(param, param)
            if param is None:
                continue
            params.append((param, _encode_value(value)))
        return params


def _encode_value(value: object) -> str:
    if value is True:
        return 'true'
    elif isinstance(value, enum.Enum):
        return str(value.value)
    else:
        return str(value)


DEFAULT_CODEC = QueryParameterCodec()
