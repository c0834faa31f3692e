import threading
import time

from traefik_fed.internal.domain.models import RouterDecl, ServiceDecl, UnifiedConfiguration
from traefik_fed.internal.output.file_writer import FileWriter
from traefik_fed.internal.output.http_server import SnapshotCache
from traefik_fed.internal.scheduler.scheduler import Scheduler, SchedulerState


class CountingAggregator:
    def __init__(self, delay=0.0, fail_first=False):
        self.delay = delay
        self.fail_first = fail_first
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.states = []
        self.scheduler = None
        self._lock = threading.Lock()

    def aggregate(self):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            call = self.calls
        if self.scheduler is not None:
            self.states.append(self.scheduler.state)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail_first and call == 1:
                raise RuntimeError("boom")
            return UnifiedConfiguration(
                routers={f"host1-app{call}": RouterDecl(rule="Host(`a`)", service="host1-traefik")},
                services={"host1-traefik": ServiceDecl(servers=("http://10.0.0.1:80",))},
            )
        finally:
            with self._lock:
                self.active -= 1


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_run_once_publishes_to_both_sinks(tmp_path):
    aggregator = CountingAggregator()
    cache = SnapshotCache()
    writer = FileWriter(str(tmp_path / "dynamic.yaml"), 30)
    scheduler = Scheduler(aggregator, 10, cache=cache, file_writer=writer)
    aggregator.scheduler = scheduler

    snapshot = scheduler.run_once()

    assert cache.read() is snapshot
    assert writer.slot.take(timeout=0) is snapshot
    assert aggregator.states == [SchedulerState.AGGREGATING]
    assert scheduler.state == SchedulerState.IDLE
    assert scheduler.cycles == 1


def test_run_once_without_sinks():
    scheduler = Scheduler(CountingAggregator(), 10)

    assert scheduler.run_once() is not None


def test_failed_cycle_keeps_previous_snapshot():
    aggregator = CountingAggregator(fail_first=True)
    cache = SnapshotCache()
    scheduler = Scheduler(aggregator, 10, cache=cache)

    assert scheduler.run_once() is None
    assert cache.read() == UnifiedConfiguration()
    assert scheduler.state == SchedulerState.IDLE

    snapshot = scheduler.run_once()
    assert cache.read() is snapshot


def test_first_cycle_runs_immediately():
    aggregator = CountingAggregator()
    cache = SnapshotCache()
    scheduler = Scheduler(aggregator, 60, cache=cache)

    scheduler.start()
    try:
        assert wait_for(lambda: cache.read().routers != {}, timeout=2)
    finally:
        scheduler.stop(timeout=5)

    assert aggregator.calls == 1


def test_polls_on_interval():
    aggregator = CountingAggregator()
    scheduler = Scheduler(aggregator, 0.05)

    scheduler.start()
    try:
        assert wait_for(lambda: aggregator.calls >= 4)
    finally:
        scheduler.stop(timeout=5)


def test_cycles_never_overlap():
    aggregator = CountingAggregator(delay=0.05)
    scheduler = Scheduler(aggregator, 0.01)

    scheduler.start()
    try:
        assert wait_for(lambda: aggregator.calls >= 4)
    finally:
        scheduler.stop(timeout=5)

    assert aggregator.max_active == 1


def test_stop_waits_for_current_cycle_and_terminates():
    aggregator = CountingAggregator(delay=0.2)
    cache = SnapshotCache()
    scheduler = Scheduler(aggregator, 60, cache=cache)

    scheduler.start()
    assert wait_for(lambda: aggregator.calls == 1)
    scheduler.stop(timeout=5)

    assert scheduler.state == SchedulerState.TERMINATED
    # The in-flight cycle completed and was published.
    assert cache.read().routers != {}
    assert aggregator.calls == 1
