import aiohttp.web
import pytest

from kapi.clients.clientsets import Clientset
from kapi.clients.errors import APIForbiddenError
from kapi.clients.reviews import AccessAction, AccessReview, review_access
from kapi.structs.references import Resource

PODS = Resource('', 'v1', 'pods', kind='Pod')


@pytest.fixture()
def clientset(executor, settings):
    return Clientset(executor, settings)


def echo_review(status):
    """ Reply with the posted review, as the server does, but with the decision. """
    async def handler(request):
        body = await request.json()
        return aiohttp.web.json_response(dict(body, status=status), status=201)
    return handler


async def test_review_in_a_non_existing_namespace(aresponses, hostname, clientset):
    reason = 'User "valerie" cannot create pods in project "foo"'
    aresponses.add(
        hostname,
        '/apis/authorization.k8s.io/v1/namespaces/foo/localsubjectaccessreviews',
        'post',
        echo_review({'allowed': False, 'reason': reason}),
    )

    review = await review_access(
        clientset,
        AccessAction(verb='create', resource=PODS),
        user='valerie',
        namespace='foo',
    )

    assert review == AccessReview(allowed=False, denied=False, namespace='foo', reason=reason)


async def test_local_review_request_body(resp_mocker, aresponses, hostname, clientset):
    response = aiohttp.web.json_response({'status': {'allowed': True}}, status=201)
    callback = resp_mocker(return_value=response)
    aresponses.add(
        hostname,
        '/apis/authorization.k8s.io/v1/namespaces/foo/localsubjectaccessreviews',
        'post',
        callback,
    )

    review = await review_access(
        clientset,
        AccessAction(verb='get', resource=PODS, name='pod1', subresource='log'),
        user='valerie',
        groups=['devs'],
        namespace='foo',
    )

    assert review.allowed
    assert review.namespace == 'foo'  # as requested, even if not in the response.
    assert callback.bodies == [{
        'apiVersion': 'authorization.k8s.io/v1',
        'kind': 'LocalSubjectAccessReview',
        'metadata': {'namespace': 'foo'},
        'spec': {
            'resourceAttributes': {
                'verb': 'get',
                'group': '',
                'version': 'v1',
                'resource': 'pods',
                'namespace': 'foo',
                'name': 'pod1',
                'subresource': 'log',
            },
            'user': 'valerie',
            'groups': ['devs'],
        },
    }]


async def test_self_review_is_cluster_scoped(resp_mocker, aresponses, hostname, clientset):
    response = aiohttp.web.json_response({'status': {'allowed': True}}, status=201)
    callback = resp_mocker(return_value=response)
    aresponses.add(
        hostname,
        '/apis/authorization.k8s.io/v1/selfsubjectaccessreviews',
        'post',
        callback,
    )

    review = await review_access(clientset, AccessAction(verb='list', resource=PODS), namespace='foo')

    assert review.allowed
    assert review.namespace == 'foo'
    assert callback.bodies[0]['kind'] == 'SelfSubjectAccessReview'
    assert callback.bodies[0]['metadata'] == {}
    assert callback.bodies[0]['spec'] == {
        'resourceAttributes': {
            'verb': 'list', 'group': '', 'version': 'v1', 'resource': 'pods', 'namespace': 'foo',
        },
    }


async def test_clusterwide_review_for_another_user(resp_mocker, aresponses, hostname, clientset):
    response = aiohttp.web.json_response({
        'status': {'allowed': False, 'denied': True, 'evaluationError': 'boo'},
    }, status=201)
    callback = resp_mocker(return_value=response)
    aresponses.add(
        hostname,
        '/apis/authorization.k8s.io/v1/subjectaccessreviews',
        'post',
        callback,
    )

    review = await review_access(clientset, AccessAction(verb='list', resource=PODS), user='valerie')

    assert review == AccessReview(allowed=False, denied=True, namespace=None, evaluation_error='boo')
    assert callback.bodies[0]['kind'] == 'SubjectAccessReview'
    assert callback.bodies[0]['spec']['user'] == 'valerie'
    assert 'namespace' not in callback.bodies[0]['spec']['resourceAttributes']


async def test_review_errors_are_escalated(resp_mocker, aresponses, hostname, clientset):
    status = {'kind': 'Status', 'code': 403, 'reason': 'Forbidden',
              'message': 'User "valerie" cannot create localsubjectaccessreviews in project "openshift"'}
    callback = resp_mocker(return_value=aiohttp.web.json_response(status, status=403))
    aresponses.add(
        hostname,
        '/apis/authorization.k8s.io/v1/namespaces/openshift/localsubjectaccessreviews',
        'post',
        callback,
    )

    with pytest.raises(APIForbiddenError) as err:
        await review_access(
            clientset,
            AccessAction(verb='create', resource=PODS),
            user='valerie',
            namespace='openshift',
        )
    assert 'cannot create localsubjectaccessreviews' in err.value.message
