import copy
import dataclasses
import json

import pytest

from kapi.clients.codecs import TypedCodec
from kapi.clients.errors import APIConflictError, APINotFoundError
from kapi.clients.params import QueryParameterCodec
from kapi.clients.resources import ResourceClient, ResourceList
from kapi.clients.watching import WatchHandle
from kapi.structs.options import DeleteOptions, GetOptions, ListOptions, PatchType, \
                                 Preconditions, PropagationPolicy

BUILDS_URL = '/apis/build.openshift.io/v1/namespaces/ns1/builds'


@pytest.fixture()
def build():
    return {
        'apiVersion': 'build.openshift.io/v1',
        'kind': 'Build',
        'metadata': {'name': 'build-1', 'namespace': 'ns1', 'resourceVersion': '123'},
        'spec': {'strategy': 'docker'},
        'status': {'phase': 'New'},
    }


@pytest.fixture()
def client(stub_executor, resource, namespace):
    return ResourceClient(stub_executor, resource, namespace)


async def test_create_posts_the_whole_object(client, stub_executor, build):
    await client.create(build)
    request, = stub_executor.requests
    assert request.method == 'POST'
    assert request.path == BUILDS_URL
    assert request.body == build
    assert request.params == ()


async def test_create_roundtrips_via_echoing_server(client, build):
    result = await client.create(build)
    assert result == build
    assert result is not build


async def test_callers_objects_are_not_modified(client, stub_executor, build):
    original = copy.deepcopy(build)
    result = await client.create(build)
    result['metadata']['name'] = 'changed'
    stub_executor.requests[0].body['spec']['strategy'] = 'changed'
    assert build == original


async def test_update_puts_to_the_named_object(client, stub_executor, build):
    await client.update(build)
    request, = stub_executor.requests
    assert request.method == 'PUT'
    assert request.path == f'{BUILDS_URL}/build-1'
    assert request.body['metadata']['resourceVersion'] == '123'  # as is, for the optimistic locking


async def test_update_never_targets_the_status(client, stub_executor, build):
    await client.update(build)
    assert not stub_executor.requests[0].path.endswith('/status')
    assert stub_executor.requests[0].subresources == ()


async def test_update_status_targets_the_status_only(client, stub_executor, build):
    await client.update_status(build)
    request, = stub_executor.requests
    assert request.method == 'PUT'
    assert request.path == f'{BUILDS_URL}/build-1/status'
    assert request.subresources == ('status',)


async def test_update_of_other_subresources(client, stub_executor, build):
    await client.update_subresource('scale', build)
    assert stub_executor.requests[0].path == f'{BUILDS_URL}/build-1/scale'


@pytest.mark.parametrize('method', ['update', 'update_status'])
async def test_updates_without_names_fail_before_requests(client, stub_executor, build, method):
    del build['metadata']['name']
    with pytest.raises(ValueError, match="no name"):
        await getattr(client, method)(build)
    assert stub_executor.requests == []


async def test_delete_sends_default_options_in_the_body(client, stub_executor):
    result = await client.delete('build-1')
    request, = stub_executor.requests
    assert result is None
    assert request.method == 'DELETE'
    assert request.path == f'{BUILDS_URL}/build-1'
    assert request.body == {'apiVersion': 'v1', 'kind': 'DeleteOptions'}
    assert request.params == ()


async def test_delete_sends_specific_options_in_the_body_not_query(client, stub_executor):
    options = DeleteOptions(
        grace_period_seconds=5,
        propagation_policy=PropagationPolicy.BACKGROUND,
        preconditions=Preconditions(uid='uid1'),
    )
    await client.delete('build-1', options)
    request, = stub_executor.requests
    assert request.params == ()
    assert request.body == {
        'apiVersion': 'v1',
        'kind': 'DeleteOptions',
        'gracePeriodSeconds': 5,
        'propagationPolicy': 'Background',
        'preconditions': {'uid': 'uid1'},
    }


async def test_delete_collection_sends_options_in_both_body_and_query(client, stub_executor):
    await client.delete_collection(
        DeleteOptions(propagation_policy=PropagationPolicy.ORPHAN),
        ListOptions(label_selector='app=x'),
    )
    request, = stub_executor.requests
    assert request.method == 'DELETE'
    assert request.path == BUILDS_URL
    assert request.params == (('labelSelector', 'app=x'),)
    assert request.body == {'apiVersion': 'v1', 'kind': 'DeleteOptions', 'propagationPolicy': 'Orphan'}


async def test_delete_collection_with_defaults(client, stub_executor):
    await client.delete_collection()
    request, = stub_executor.requests
    assert request.params == ()
    assert request.body == {'apiVersion': 'v1', 'kind': 'DeleteOptions'}


async def test_get_sends_options_in_the_query(client, stub_executor, build):
    stub_executor.results = [build]
    result = await client.get('build-1', GetOptions(resource_version='0'))
    request, = stub_executor.requests
    assert request.method == 'GET'
    assert request.path == f'{BUILDS_URL}/build-1'
    assert request.params == (('resourceVersion', '0'),)
    assert request.body is None
    assert result == build


async def test_get_escalates_api_errors_as_is(client, stub_executor):
    error = APINotFoundError({'reason': 'NotFound'}, status=404)
    stub_executor.results = [error]
    with pytest.raises(APINotFoundError) as err:
        await client.get('build-1')
    assert err.value is error
    assert len(stub_executor.requests) == 1  # no retries


async def test_update_conflicts_are_escalated(client, stub_executor, build):
    stub_executor.results = [APIConflictError({'reason': 'Conflict'}, status=409)]
    with pytest.raises(APIConflictError):
        await client.update(build)


async def test_list_sends_options_in_the_query(client, stub_executor):
    stub_executor.results = [{'kind': 'BuildList', 'items': [], 'metadata': {}}]
    await client.list(ListOptions(label_selector='app=x', limit=2, continue_token='abc'))
    request, = stub_executor.requests
    assert request.method == 'GET'
    assert request.path == BUILDS_URL
    assert request.params == (('labelSelector', 'app=x'), ('limit', '2'), ('continue', 'abc'))
    assert not request.streaming


async def test_list_restores_kinds_and_api_versions_of_items(client, stub_executor):
    stub_executor.results = [{
        'apiVersion': 'build.openshift.io/v1',
        'kind': 'BuildList',
        'metadata': {'resourceVersion': '456', 'continue': 'next', 'remainingItemCount': 10},
        'items': [
            {'metadata': {'name': 'build-1'}},
            {'kind': 'Other', 'apiVersion': 'other/v1', 'metadata': {'name': 'build-2'}},
        ],
    }]
    result = await client.list()
    assert isinstance(result, ResourceList)
    assert result.resource_version == '456'
    assert result.continue_token == 'next'
    assert result.remaining_item_count == 10
    assert result.items == [
        {'kind': 'Build', 'apiVersion': 'build.openshift.io/v1', 'metadata': {'name': 'build-1'}},
        {'kind': 'Other', 'apiVersion': 'other/v1', 'metadata': {'name': 'build-2'}},
    ]


async def test_list_without_continuation(client, stub_executor):
    stub_executor.results = [{'kind': 'BuildList', 'metadata': {'continue': ''}, 'items': None}]
    result = await client.list()
    assert result.items == []
    assert result.continue_token is None
    assert result.resource_version is None


async def test_watch_sends_the_flag_and_returns_a_handle(client, stub_executor):
    handle = await client.watch(ListOptions(resource_version='123', allow_watch_bookmarks=True))
    try:
        request, = stub_executor.requests
        assert isinstance(handle, WatchHandle)
        assert request.method == 'GET'
        assert request.path == BUILDS_URL
        assert request.streaming
        assert request.params == (
            ('resourceVersion', '123'),
            ('watch', 'true'),
            ('allowWatchBookmarks', 'true'),
        )
        assert stub_executor.stoppers[0] is not None
    finally:
        await handle.aclose()
    assert stub_executor.stoppers[0].done()


@pytest.mark.parametrize('patch_type', list(PatchType))
async def test_patch_type_is_observable_by_the_server(client, stub_executor, build, patch_type):
    stub_executor.results = [build]
    result = await client.patch('build-1', patch_type, b'{"spec": {}}')
    request, = stub_executor.requests
    assert request.method == 'PATCH'
    assert request.path == f'{BUILDS_URL}/build-1'
    assert request.content_type == patch_type.value
    assert request.body == b'{"spec": {}}'
    assert result == build


async def test_patch_of_subresources(client, stub_executor, build):
    stub_executor.results = [build]
    await client.patch('build-1', PatchType.MERGE, '{"status": {}}', 'status')
    request, = stub_executor.requests
    assert request.path == f'{BUILDS_URL}/build-1/status'
    assert request.body == b'{"status": {}}'


async def test_empty_responses_of_object_operations_fail(client, stub_executor):
    stub_executor.results = [None]
    with pytest.raises(ValueError, match="no object"):
        await client.get('build-1')


async def test_cluster_scoped_clients_reject_namespaces(stub_executor, cluster_resource):
    with pytest.raises(ValueError, match="cluster-scoped"):
        ResourceClient(stub_executor, cluster_resource, 'ns1')


async def test_cluster_scoped_clients(stub_executor, cluster_resource):
    client = ResourceClient(stub_executor, cluster_resource)
    await client.create({'metadata': {'name': 'ns1'}})
    await client.delete('ns1')
    assert stub_executor.requests[0].path == '/api/v1/namespaces'
    assert stub_executor.requests[1].path == '/api/v1/namespaces/ns1'


async def test_custom_parameter_codecs(stub_executor, resource, namespace):
    codec = QueryParameterCodec({'v1': {'labelSelector': 'labels'}})
    client = ResourceClient(stub_executor, resource, namespace, params=codec)
    stub_executor.results = [{'items': []}]
    await client.list(ListOptions(label_selector='app=x'))
    assert stub_executor.requests[0].params == (('labels', 'app=x'),)


@dataclasses.dataclass()
class Build:
    name: str
    strategy: str


def load_build(raw):
    return Build(name=raw['metadata']['name'], strategy=raw['spec']['strategy'])


def dump_build(build):
    return {'metadata': {'name': build.name}, 'spec': {'strategy': build.strategy}}


async def test_typed_payloads(stub_executor, resource, namespace):
    client = ResourceClient(stub_executor, resource, namespace,
                            codec=TypedCodec(load=load_build, dump=dump_build))
    result = await client.create(Build(name='build-1', strategy='docker'))
    assert result == Build(name='build-1', strategy='docker')
    assert json.loads(json.dumps(stub_executor.requests[0].body)) == {
        'metadata': {'name': 'build-1'},
        'spec': {'strategy': 'docker'},
    }


async def test_calls_are_logged(client, build, assert_logs):
    await client.create(build)
    await client.delete('build-1')
    assert_logs([
        r"Creating builds.v1.build.openshift.io",
        r"Deleting builds.v1.build.openshift.io",
    ])
