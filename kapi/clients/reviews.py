"""
Access reviews: asking the API server whether an action would be allowed.

The server evaluates the authorization policies for the subject and the action
and replies with a decision without performing the action. The reviews are
regular resources of the ``authorization.k8s.io`` group, which are created
(posted) and never stored, so they go through the usual resource clients:

* ``SelfSubjectAccessReview`` (cluster-scoped) for the current caller;
* ``LocalSubjectAccessReview`` (namespaced) for another user in a namespace;
* ``SubjectAccessReview`` (cluster-scoped) for another user cluster-wide.

The reviewed namespace does not need to exist: the policies are evaluated
for it anyway, and the result refers to it as it was asked.
"""
import dataclasses
from collections.abc import Collection, Mapping
from typing import Any

from kapi.clients import clientsets
from kapi.structs import references

AUTHORIZATION_GROUP = 'authorization.k8s.io'
AUTHORIZATION_VERSION = 'v1'

SELF_SUBJECT_ACCESS_REVIEWS = references.Resource(
    AUTHORIZATION_GROUP, AUTHORIZATION_VERSION, 'selfsubjectaccessreviews',
    kind='SelfSubjectAccessReview', namespaced=False,
)
LOCAL_SUBJECT_ACCESS_REVIEWS = references.Resource(
    AUTHORIZATION_GROUP, AUTHORIZATION_VERSION, 'localsubjectaccessreviews',
    kind='LocalSubjectAccessReview', namespaced=True,
)
SUBJECT_ACCESS_REVIEWS = references.Resource(
    AUTHORIZATION_GROUP, AUTHORIZATION_VERSION, 'subjectaccessreviews',
    kind='SubjectAccessReview', namespaced=False,
)


@dataclasses.dataclass(frozen=True)
class AccessAction:
    """ An action to review: a verb on a resource (or a specific object of it). """
    verb: str
    resource: references.Resource
    name: str | None = None
    subresource: str | None = None


@dataclasses.dataclass(frozen=True)
class AccessReview:
    allowed: bool
    denied: bool = False
    namespace: str | None = None
    reason: str | None = None
    evaluation_error: str | None = None


async def review_access(
        clientset: clientsets.Clientset,
        action: AccessAction,
        *,
        user: str | None = None,
        groups: Collection[str] = (),
        namespace: references.Namespace = None,
) -> AccessReview:
    """
    Ask the server if the subject can perform the action in the namespace.

    Without a user or groups, the subject is the caller itself. The API errors
    (e.g. if the caller cannot create the reviews) are escalated as usual.
    """
    attributes: dict[str, Any] = dict(
        verb=action.verb,
        group=action.resource.group,
        version=action.resource.version,
        resource=action.resource.plural,
    )
    if namespace is not None:
        attributes['namespace'] = namespace
    if action.name is not None:
        attributes['name'] = action.name
    if action.subresource is not None:
        attributes['subresource'] = action.subresource

    spec: dict[str, Any] = dict(resourceAttributes=attributes)
    if user is not None or groups:
        resource = SUBJECT_ACCESS_REVIEWS if namespace is None else LOCAL_SUBJECT_ACCESS_REVIEWS
        if user is not None:
            spec['user'] = user
        if groups:
            spec['groups'] = list(groups)
    else:
        resource = SELF_SUBJECT_ACCESS_REVIEWS

    metadata = dict(namespace=namespace) if resource.namespaced else {}
    body = dict(apiVersion=resource.api_version, kind=resource.kind, metadata=metadata, spec=spec)
    client = clientset.resources(resource, namespace if resource.namespaced else None)
    response = await client.create(body)
    return _parse_review(response, namespace=namespace)


def _parse_review(response: Mapping[str, Any], *, namespace: references.Namespace) -> AccessReview:
    status = response.get('status') or {}
    attributes = (response.get('spec') or {}).get('resourceAttributes') or {}
    return AccessReview(
        allowed=bool(status.get('allowed', False)),
        denied=bool(status.get('denied', False)),
        namespace=attributes.get('namespace', namespace),
        reason=status.get('reason') or None,
        evaluation_error=status.get('evaluationError') or None,
    )
