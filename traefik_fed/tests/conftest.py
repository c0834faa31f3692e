from unittest.mock import MagicMock

import pytest

from traefik_fed.internal.domain.models import RemoteRouter, UpstreamSpec


def make_router(name, provider="docker", status="enabled", rule=None, **extra):
    data = {
        "name": name,
        "provider": provider,
        "status": status,
        "rule": rule or f"Host(`{name.split('@')[0]}.example.com`)",
        "entryPoints": ["web"],
        "service": name,
    }
    data.update(extra)
    return RemoteRouter.model_validate(data)


def make_response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class FakeClient:
    """Stands in for TraefikClient: returns fixed routers or raises a fixed error."""

    def __init__(self, routers=None, error=None):
        self.routers = routers or []
        self.error = error
        self.calls = 0

    def get_routers(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.routers)


@pytest.fixture
def host1():
    return UpstreamSpec(name="host1", admin_url="http://10.0.0.1:8080", server_url="http://10.0.0.1:80")


@pytest.fixture
def host2():
    return UpstreamSpec(name="host2", admin_url="http://10.0.0.2:8080/", server_url="http://10.0.0.2:80")
