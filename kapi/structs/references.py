import dataclasses
import re
from collections.abc import Iterator
from typing import NewType

# A specific really existing addressable namespace (at least, the one assumed to be so).
# Made as a NewType for stricter type-checking to avoid collisions with other strings.
NamespaceName = NewType('NamespaceName', str)

# A namespace reference usable in the API calls. `None` means cluster-wide API calls.
Namespace = NamespaceName | None

# Detect conventional API versions: e.g. in "builds.v1.build.openshift.io".
# Non-conventional versions are indistinguishable from API groups ("builds.foo1.example.com").
K8S_VERSION_PATTERN = re.compile(r'^v\d+(?:(?:alpha|beta)\d+)?$')


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A reference to a very specific custom or built-in resource kind.

    It is used to form the API URLs. Generally, the API only needs
    an API group, an API version, and a plural name of the resource.
    All other names are remembered for logging and informational purposes.
    """

    group: str
    """
    The resource's API group; e.g. ``"build.openshift.io"``, ``"apps"``.
    For Core v1 API resources, an empty string: ``""``.
    """

    version: str
    """
    The resource's API version; e.g. ``"v1"``, ``"v1beta1"``, etc.
    """

    plural: str
    """
    The resource's plural name; e.g. ``"pods"``, ``"builds"``.
    It is used as an API endpoint, together with API group & version.
    """

    kind: str | None = None
    """
    The resource's kind (as in YAML files); e.g. ``"Pod"``, ``"Build"``.
    """

    namespaced: bool = True
    """
    Whether the resource is namespaced (``True``) or cluster-scoped (``False``).
    """

    subresources: frozenset[str] = frozenset()
    """
    The resource's known subresources, if declared; e.g. ``{"status", "scale"}``.
    Informational only: the requests can address any subresource by name.
    """

    def __hash__(self) -> int:
        return hash((self.group, self.version, self.plural))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Resource):
            self_tuple = (self.group, self.version, self.plural)
            other_tuple = (other.group, other.version, other.plural)
            return self_tuple == other_tuple
        else:
            return NotImplemented

    def __repr__(self) -> str:
        return f'{self.plural}.{self.version}.{self.group}'.strip('.')

    # Mostly for tests and for unpacking into other references.
    def __iter__(self) -> Iterator[str]:
        return iter((self.group, self.version, self.plural))

    @property
    def api_version(self) -> str:
        """ The ``apiVersion`` as seen in the objects' bodies: e.g. ``"apps/v1"``. """
        return f'{self.group}/{self.version}' if self.group else self.version

    @property
    def api_prefix(self) -> str:
        """ The URL prefix of the resource's API group & version. """
        if self.group == '':
            return f'/api/{self.version}'
        else:
            return f'/apis/{self.group}/{self.version}'


def parse_resource(
        text: str,
        *,
        namespaced: bool = True,
) -> Resource:
    """
    Parse a resource reference as typed by humans into a specific resource.

    The accepted forms are ``plural.version.group`` (``builds.v1.build.openshift.io``),
    ``plural.version`` for the core API (``pods.v1``), and ``group/version/plural``
    (``apps/v1/deployments``, or ``v1/pods`` for the core API).
    A bare plural name (``pods``) is assumed to be in the core ``v1`` API.
    """
    if '/' in text:
        *prefix, plural = text.split('/')
        if len(prefix) == 1:
            return Resource('', prefix[0], plural, namespaced=namespaced)
        elif len(prefix) == 2:
            return Resource(prefix[0], prefix[1], plural, namespaced=namespaced)
        else:
            raise ValueError(f"Unparseable resource reference: {text!r}")

    plural, *rest = text.split('.', 2)
    if not plural:
        raise ValueError(f"Unparseable resource reference: {text!r}")
    elif not rest:
        return Resource('', 'v1', plural, namespaced=namespaced)
    elif K8S_VERSION_PATTERN.match(rest[0]):
        return Resource('.'.join(rest[1:]), rest[0], plural, namespaced=namespaced)
    else:
        raise ValueError(f"A conventional API version is expected after the plural: {text!r}")
