import socket
import threading
import time

import pytest
import requests

from traefik_fed.config import AppConfig
from traefik_fed.federation.service import FederationService
from traefik_fed.internal.aggregator.aggregator import Aggregator
from traefik_fed.internal.domain.errors import UpstreamUnreachable
from traefik_fed.internal.output import render
from .conftest import FakeClient, make_router


@pytest.fixture(autouse=True)
def _no_signal_handlers(monkeypatch):
    installed = []
    monkeypatch.setattr("traefik_fed.federation.service.signal.signal", lambda *args: installed.append(args))
    return installed


def app_config(output):
    return AppConfig.from_dict({
        "upstreams": [
            {"name": "host1", "admin_url": "http://10.0.0.1:8080", "server_url": "http://10.0.0.1:80"},
            {"name": "host2", "admin_url": "http://10.0.0.2:8080", "server_url": "http://10.0.0.2:80"},
        ],
        "routers": {"defaults": {"entrypoints": ["websecure"]}},
        "output": output,
        "server": {"poll_interval": "1s"},
    })


def fake_aggregator(config):
    clients = {
        "host1": FakeClient([make_router("webapp@docker")]),
        "host2": FakeClient(error=UpstreamUnreachable("host2", "connection refused")),
    }
    return Aggregator(config.upstreams, config.selector, config.defaults, config.merge_policy, clients=clients)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def run_in_background(service):
    result = {}
    thread = threading.Thread(target=lambda: result.setdefault("code", service.run()))
    thread.start()
    return thread, result


def test_outputs_follow_config(tmp_path):
    config = app_config({"file": {"enabled": True, "path": str(tmp_path / "out.yaml")}})

    service = FederationService(config, aggregator=fake_aggregator(config))

    assert service.http_server is None
    assert service.cache is None
    assert service.file_writer is not None
    assert service.scheduler.file_writer is service.file_writer


def test_file_only_service_writes_and_stops(tmp_path, _no_signal_handlers):
    path = tmp_path / "out.yaml"
    config = app_config({"file": {"enabled": True, "path": str(path)}})
    service = FederationService(config, aggregator=fake_aggregator(config))

    thread, result = run_in_background(service)
    try:
        assert wait_for(path.exists)
    finally:
        service.shutdown()
        thread.join(timeout=10)

    assert not thread.is_alive()
    assert result["code"] == 0
    assert len(_no_signal_handlers) == 2
    snapshot = render.from_yaml(path.read_text())
    assert list(snapshot.routers) == ["host1-webapp"]
    assert snapshot.routers["host1-webapp"].entry_points == ("websecure",)
    assert list(snapshot.services) == ["host1-traefik"]


def test_http_service_serves_snapshot(tmp_path):
    config = app_config({"http": {"enabled": True, "host": "127.0.0.1", "port": 8080}})
    service = FederationService(config, aggregator=fake_aggregator(config))
    # Use an ephemeral port instead of the configured one.
    service.http_server.port = 0
    port = service.http_server.bind().getsockname()[1]

    def fetch():
        try:
            resp = requests.get(f"http://127.0.0.1:{port}/config", params={"format": "json"}, timeout=1)
        except requests.RequestException:
            return None
        return resp.json() if resp.status_code == 200 else None

    thread, result = run_in_background(service)
    try:
        assert wait_for(lambda: (fetch() or {}).get("http", {}).get("routers"))
        document = fetch()
    finally:
        service.shutdown()
        thread.join(timeout=10)

    assert result["code"] == 0
    assert document["http"]["services"] == {
        "host1-traefik": {"loadBalancer": {"servers": [{"url": "http://10.0.0.1:80"}]}},
    }


def test_bind_failure_exits_non_zero():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    try:
        port = blocker.getsockname()[1]
        config = app_config({"http": {"enabled": True, "host": "127.0.0.1", "port": port}})
        service = FederationService(config, aggregator=fake_aggregator(config))

        assert service.run() == 1
    finally:
        blocker.close()

    # Nothing was started after the bind failed.
    assert service.scheduler.cycles == 0
