"""
Errors raised by traefik-fed.

Only startup validation (ConfigInvalid) and listener bind failures
(ServingFailure) are fatal. Upstream and persistence errors are logged by the
component that hits them and the next cycle tries again.
"""


class TraefikFedError(Exception):
    """Base error for traefik-fed."""
    pass


class ConfigInvalid(TraefikFedError):
    """Configuration file missing, unreadable or failing validation."""
    pass


class UpstreamError(TraefikFedError):
    """A single upstream could not provide its router list."""

    def __init__(self, upstream: str, message: str):
        super().__init__(f"upstream {upstream}: {message}")
        self.upstream = upstream


class UpstreamUnreachable(UpstreamError):
    """Transport error or timeout talking to the upstream API."""
    pass


class UpstreamBadResponse(UpstreamError):
    """Upstream API answered with a non-2xx status."""

    def __init__(self, upstream: str, status_code: int, body: str):
        super().__init__(upstream, f"API returned status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class UpstreamMalformed(UpstreamError):
    """Upstream API body could not be decoded as a router list."""
    pass


class PersistenceFailure(TraefikFedError):
    """Writing the configuration file failed."""
    pass


class ServingFailure(TraefikFedError):
    """The HTTP output could not bind its listening endpoint."""
    pass
