"""
All configuration flags, options, settings to fine-tune the client.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import dataclasses
from collections.abc import Iterable


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the whole API request (including the response's reading).
    """

    connect_timeout: float | None = None
    """
    A timeout for establishing a connection to the API server.
    """

    error_backoffs: float | Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21)
    """
    Backoffs (in seconds) for retrying the failed requests in the executor.

    Only the connection errors, timeouts, and HTTP 5xx are retried.
    Other API errors (such as "not found" or "forbidden") are never retried:
    they are for the callers to decide upon.

    An empty sequence disables the retries: every failure is escalated at once.
    """


@dataclasses.dataclass
class WatchingSettings:

    client_timeout: float | None = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    """

    connect_timeout: float | None = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    """


@dataclasses.dataclass
class PollingSettings:
    """
    Defaults for awaiting the eventually consistent conditions.

    See :func:`kapi.engines.polling.poll`.
    """

    interval: float = 0.1
    """
    How often the condition is re-checked (seconds).
    """

    timeout: float = 10
    """
    How long to wait for the condition to become true (seconds).
    """


@dataclasses.dataclass
class ClientSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    polling: PollingSettings = dataclasses.field(default_factory=PollingSettings)
