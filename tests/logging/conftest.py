import logging.handlers

import pytest

from kapi.engines.loggers import ResourceLogger


@pytest.fixture()
def make_record(resource):
    """ Log a message via a resource logger and capture the resulting record. """
    handler = logging.handlers.BufferingHandler(capacity=100)
    base = logging.getLogger('kapi.tests')
    base.setLevel(logging.DEBUG)
    base.addHandler(handler)

    def make_record_fn(*, namespace=None, name=None, extra=None):
        logger = ResourceLogger(resource=resource, namespace=namespace, name=name, base=base)
        logger.info("hello", extra=extra or {})
        return handler.buffer[-1]

    try:
        yield make_record_fn
    finally:
        base.removeHandler(handler)
        base.setLevel(logging.NOTSET)


@pytest.fixture()
def ns_record(make_record):
    return make_record(namespace='namespace1', name='name1')


@pytest.fixture()
def cluster_record(make_record):
    return make_record(name='name1')
