"""
Typed options of the API calls: listing, getting, deleting, patching.

The listing & getting options go to the URL's query parameters. They are
encoded by the parameter codecs (:mod:`kapi.clients.params`), which read
the query parameter names from the fields' metadata (``param``),
so that the same options can be re-mapped for different API versions.

The deletion options go to the request's body, never to the query:
they convey the structured intent (preconditions, propagation) that does not
fit into the selectors' strings.
"""
import dataclasses
import enum
from typing import Any

from typing_extensions import TypedDict


class PatchType(str, enum.Enum):
    """
    A strategy of how the server interprets a patch body.

    The value is the content type of the request, which is the only way
    the server learns the strategy: it is never inferred from the body's shape.
    """
    JSON = 'application/json-patch+json'
    MERGE = 'application/merge-patch+json'
    STRATEGIC = 'application/strategic-merge-patch+json'
    APPLY = 'application/apply-patch+yaml'


class PropagationPolicy(str, enum.Enum):
    """ How the dependents of a deleted object are garbage-collected. """
    ORPHAN = 'Orphan'
    BACKGROUND = 'Background'
    FOREGROUND = 'Foreground'


@dataclasses.dataclass(frozen=True)
class ListOptions:
    """
    Criteria for listing, watching, and collection-deleting the resources.
    """

    label_selector: str | None = dataclasses.field(
        default=None, metadata={'param': 'labelSelector'})

    field_selector: str | None = dataclasses.field(
        default=None, metadata={'param': 'fieldSelector'})

    resource_version: str | None = dataclasses.field(
        default=None, metadata={'param': 'resourceVersion'})

    resource_version_match: str | None = dataclasses.field(
        default=None, metadata={'param': 'resourceVersionMatch'})

    watch: bool = dataclasses.field(
        default=False, metadata={'param': 'watch'})

    allow_watch_bookmarks: bool = dataclasses.field(
        default=False, metadata={'param': 'allowWatchBookmarks'})

    timeout_seconds: int | None = dataclasses.field(
        default=None, metadata={'param': 'timeoutSeconds'})

    limit: int | None = dataclasses.field(
        default=None, metadata={'param': 'limit'})

    continue_token: str | None = dataclasses.field(
        default=None, metadata={'param': 'continue'})


@dataclasses.dataclass(frozen=True)
class GetOptions:
    resource_version: str | None = dataclasses.field(
        default=None, metadata={'param': 'resourceVersion'})


class RawPreconditions(TypedDict, total=False):
    uid: str
    resourceVersion: str


class RawDeleteOptions(TypedDict, total=False):
    apiVersion: str
    kind: str
    gracePeriodSeconds: int
    propagationPolicy: str
    preconditions: RawPreconditions
    dryRun: list[str]


@dataclasses.dataclass(frozen=True)
class Preconditions:
    """ The deletion happens only if the stored object still matches these. """
    uid: str | None = None
    resource_version: str | None = None


@dataclasses.dataclass(frozen=True)
class DeleteOptions:
    grace_period_seconds: int | None = None
    propagation_policy: PropagationPolicy | None = None
    preconditions: Preconditions | None = None
    dry_run: bool = False

    def as_body(self) -> RawDeleteOptions:
        """ Render the options as a request body, as the API server expects it. """
        body = RawDeleteOptions(apiVersion='v1', kind='DeleteOptions')
        if self.grace_period_seconds is not None:
            body['gracePeriodSeconds'] = self.grace_period_seconds
        if self.propagation_policy is not None:
            body['propagationPolicy'] = PropagationPolicy(self.propagation_policy).value
        if self.preconditions is not None:
            preconditions = RawPreconditions()
            if self.preconditions.uid is not None:
                preconditions['uid'] = self.preconditions.uid
            if self.preconditions.resource_version is not None:
                preconditions['resourceVersion'] = self.preconditions.resource_version
            body['preconditions'] = preconditions
        if self.dry_run:
            body['dryRun'] = ['All']
        return body


def get_param_name(field: 'dataclasses.Field[Any]') -> str:
    return str(field.metadata.get('param', field.name))
