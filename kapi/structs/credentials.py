"""
Connection-related structures.

The client does not acquire the credentials on its own: no login flows,
no token refreshing, no kubeconfig discovery. The callers bring them
in a structured and type-annotated way, and the transport layer
(:mod:`kapi.clients.auth`) turns them into an HTTP session.

The information is limited to what is passed to the HTTP protocol and
the TCP/SSL connection, i.e. everything usable in a generic HTTP client:

* TCP server host & port.
* SSL verification/ignorance flag.
* SSL certificate authority.
* SSL client certificate and its private key.
* HTTP ``Authorization: Basic username:password``.
* HTTP ``Authorization: Bearer token`` (or other schemes: Bearer, Digest, etc).
* URL's default namespace for the cases when this is implied.
"""
import dataclasses


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    A single endpoint with specific credentials and connection flags to use.
    """
    server: str  # e.g. "https://localhost:443"
    ca_path: str | None = None
    ca_data: bytes | None = None
    insecure: bool | None = None
    username: str | None = None
    password: str | None = None
    scheme: str | None = None  # RFC-7235/5.1: e.g. Bearer, Basic, Digest, etc.
    token: str | None = None
    certificate_path: str | None = None
    certificate_data: bytes | None = None
    private_key_path: str | None = None
    private_key_data: bytes | None = None
    default_namespace: str | None = None
