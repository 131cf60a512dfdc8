import asyncio
import io
import json
import logging
import re
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from kapi.clients.api import APIExecutor
from kapi.clients.auth import APIContext
from kapi.clients.clientsets import Clientset
from kapi.clients.requests import Request
from kapi.engines.loggers import ObjectPrefixingTextFormatter, configure
from kapi.structs.configuration import ClientSettings
from kapi.structs.credentials import ConnectionInfo
from kapi.structs.references import NamespaceName, Resource


@pytest.fixture()
def namespaced_resource():
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('build.openshift.io', 'v1', 'builds', kind='Build', namespaced=True)


@pytest.fixture()
def cluster_resource():
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('', 'v1', 'namespaces', kind='Namespace', namespaced=False)


@pytest.fixture()
def resource(namespaced_resource):
    return namespaced_resource


@pytest.fixture()
def namespace():
    return NamespaceName('ns1')


@pytest.fixture()
def settings():
    settings = ClientSettings()
    settings.networking.error_backoffs = []  # no retries unless explicitly enabled.
    return settings


@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def connection_info(hostname):
    return ConnectionInfo(server=f'https://{hostname}')


#
# Mocks for the API server. They are the real aiohttp clients against
# the fake servers of `aresponses`, so that the real network is never used.
#

@pytest.fixture()
async def context(connection_info):
    context = APIContext(connection_info)
    async with context.session:
        yield context


@pytest.fixture()
async def executor(context, settings):
    return APIExecutor(context, settings=settings)


@pytest.fixture()
def resp_mocker(aresponses):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which return a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effects).

    The difference from passing the responses directly to `aresponses.add`
    is that it is possible to assert on whether the response was handled
    by that callback at all (i.e. HTTP URL & method matched), especially
    if there are multiple responses registered.

    The requests' bodies are preserved in the mock's ``bodies`` (one per call),
    since the request's content can be read only inside of the handler.

    Sample usage::

        def test_me(resp_mocker):
            response = aiohttp.web.json_response({'a': 'b'})
            callback = resp_mocker(return_value=response)
            aresponses.add(hostname, '/path/', 'get', callback)
            do_something()
            assert callback.called
            assert callback.call_count == 1
            assert callback.bodies == [None]
    """
    def resp_maker(*args, **kwargs):
        actual_response = MagicMock(*args, **kwargs)

        async def resp_mock_effect(request):
            raw = await request.read()
            try:
                data = json.loads(raw) if raw else None
            except json.JSONDecodeError:
                data = raw.decode('utf-8')
            callback.bodies.append(data)

            # Get a response/error as it was intended (via return_value/side_effect).
            return actual_response()

        callback = AsyncMock(side_effect=resp_mock_effect)
        callback.bodies = []
        return callback
    return resp_maker


#
# Stub executors for the pure client tests: no HTTP at all, only the requests.
#

class StubExecutor:
    """
    An executor that records the requests and replies with the prepared results.

    By default, it echoes the request's body back, as the API server would do
    for the creations and updates of the objects without defaulting.
    """

    def __init__(self, results: list[Any] | None = None, lines: list[Any] | None = None) -> None:
        super().__init__()
        self.requests: list[Request] = []
        self.results = list(results) if results is not None else None
        self.lines = list(lines or [])
        self.stoppers: list[asyncio.Future[Any] | None] = []

    async def execute(self, request: Request) -> Any:
        self.requests.append(request)
        if self.results is None:
            return json.loads(json.dumps(request.body)) if isinstance(request.body, dict) else None
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def stream(self, request: Request, *, stopper=None):
        self.requests.append(request)
        self.stoppers.append(stopper)
        lines = list(self.lines)

        async def iter_lines():
            for line in lines:
                if isinstance(line, BaseException):
                    raise line
                yield line
        return iter_lines()


@pytest.fixture()
def stub_executor():
    return StubExecutor()


@pytest.fixture()
def clientset(stub_executor, settings):
    return Clientset(stub_executor, settings)


#
# Helpers for the logging checks.
#

@pytest.fixture(autouse=True)
def _restore_logging():
    """ Undo the logging configuration by the CLI invocations & logging tests. """
    logger = logging.getLogger()
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture()
def logstream(caplog):
    """ Prefixing is done at the final output. We have to intercept it. """
    logger = logging.getLogger()
    configure(verbose=True)

    # Inject our stream-intercepting handler.
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    formatter = ObjectPrefixingTextFormatter('prefix %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        logger.removeHandler(handler)


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns=(), prohibited=(), strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
