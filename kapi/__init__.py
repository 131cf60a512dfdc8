"""
The main kapi module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the client's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kapi.clients.api import (
    Executor,
    APIExecutor,
)
from kapi.clients.clientsets import (
    Clientset,
)
from kapi.clients.codecs import (
    PayloadCodec,
    RawCodec,
    TypedCodec,
)
from kapi.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIBadRequestError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIGoneError,
    APIInvalidError,
    APITooManyRequestsError,
    is_not_found,
    is_forbidden,
    is_unauthorized,
    is_conflict,
    is_invalid,
    is_gone,
    is_server_error,
)
from kapi.clients.params import (
    ParameterCodec,
    QueryParameterCodec,
)
from kapi.clients.requests import (
    Request,
    RequestBuilder,
)
from kapi.clients.resources import (
    ResourceClient,
    ResourceList,
)
from kapi.clients.reviews import (
    AccessAction,
    AccessReview,
    review_access,
)
from kapi.clients.watching import (
    WatchEvent,
    WatchEventType,
    WatchHandle,
)
from kapi.engines.loggers import (
    LogFormat,
    ResourceLogger,
    configure as configure_logging,
)
from kapi.engines.polling import (
    PollTimeoutError,
    poll,
)
from kapi.structs.bodies import (
    RawBody,
    RawMeta,
    RawList,
)
from kapi.structs.configuration import (
    ClientSettings,
)
from kapi.structs.credentials import (
    ConnectionInfo,
)
from kapi.structs.options import (
    PatchType,
    PropagationPolicy,
    ListOptions,
    GetOptions,
    DeleteOptions,
    Preconditions,
)
from kapi.structs.references import (
    Resource,
    NamespaceName,
    parse_resource,
)
from kapi.utilities.typedefs import (
    Logger,
)
from kapi.utilities.versions import (
    version as __version__,
)

__all__ = [
    'Executor', 'APIExecutor',
    'Clientset',
    'PayloadCodec', 'RawCodec', 'TypedCodec',
    'APIError', 'APIClientError', 'APIServerError',
    'APIBadRequestError', 'APIUnauthorizedError', 'APIForbiddenError',
    'APINotFoundError', 'APIConflictError', 'APIGoneError',
    'APIInvalidError', 'APITooManyRequestsError',
    'is_not_found', 'is_forbidden', 'is_unauthorized', 'is_conflict',
    'is_invalid', 'is_gone', 'is_server_error',
    'ParameterCodec', 'QueryParameterCodec',
    'Request', 'RequestBuilder',
    'ResourceClient', 'ResourceList',
    'AccessAction', 'AccessReview', 'review_access',
    'WatchEvent', 'WatchEventType', 'WatchHandle',
    'LogFormat', 'ResourceLogger', 'configure_logging',
    'PollTimeoutError', 'poll',
    'RawBody', 'RawMeta', 'RawList',
    'ClientSettings',
    'ConnectionInfo',
    'PatchType', 'PropagationPolicy',
    'ListOptions', 'GetOptions', 'DeleteOptions', 'Preconditions',
    'Resource', 'NamespaceName', 'parse_resource',
    'Logger',
]
