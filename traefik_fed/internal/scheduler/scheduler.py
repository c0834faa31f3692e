import logging
import threading
import time
from enum import Enum
from typing import Optional

from traefik_fed.internal.aggregator.aggregator import Aggregator
from traefik_fed.internal.domain.models import UnifiedConfiguration
from traefik_fed.internal.output.file_writer import FileWriter
from traefik_fed.internal.output.http_server import SnapshotCache

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    AGGREGATING = "aggregating"
    PUBLISHING = "publishing"
    TERMINATED = "terminated"


class Scheduler:
    """Runs one aggregation immediately, then one every ``poll_interval`` seconds.

    Cycles never overlap: a cycle that overruns its interval delays the next
    one. stop() takes effect once the current cycle has completed.
    """

    def __init__(self, aggregator: Aggregator, poll_interval: float,
                 cache: Optional[SnapshotCache] = None, file_writer: Optional[FileWriter] = None):
        self.aggregator = aggregator
        self.poll_interval = poll_interval
        self.cache = cache
        self.file_writer = file_writer
        self.state = SchedulerState.IDLE
        self.cycles = 0
        self.stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> Optional[UnifiedConfiguration]:
        self.state = SchedulerState.AGGREGATING
        try:
            snapshot = self.aggregator.aggregate()
        except Exception as e:
            logger.error(f"Aggregation failed: {e}", exc_info=True)
            self.state = SchedulerState.IDLE
            return None

        logger.info(f"Aggregation completed: routers={len(snapshot.routers)}, services={len(snapshot.services)}")

        self.state = SchedulerState.PUBLISHING
        self.publish(snapshot)
        self.cycles += 1
        self.state = SchedulerState.IDLE
        return snapshot

    def publish(self, snapshot: UnifiedConfiguration) -> None:
        if self.cache is not None:
            self.cache.update(snapshot)
        if self.file_writer is not None:
            self.file_writer.submit(snapshot)

    def run(self) -> None:
        logger.info(f"Scheduler started, poll interval {self.poll_interval}s")
        while not self.stop_event.is_set():
            started = time.monotonic()
            self.run_once()
            remaining = self.poll_interval - (time.monotonic() - started)
            if remaining > 0:
                self.stop_event.wait(remaining)
        self.state = SchedulerState.TERMINATED
        logger.info("Scheduler stopped.")

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
