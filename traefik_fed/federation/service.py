import logging
import signal
import threading
from typing import Optional

from traefik_fed.config import AppConfig
from traefik_fed.internal.aggregator.aggregator import Aggregator
from traefik_fed.internal.domain.errors import ServingFailure
from traefik_fed.internal.output.file_writer import FileWriter
from traefik_fed.internal.output.http_server import HTTPServer, SnapshotCache
from traefik_fed.internal.scheduler.scheduler import Scheduler
from traefik_fed.internal.version.version import VersionInfo

logger = logging.getLogger(__name__)

STOP_TIMEOUT = 15  # seconds; longer than one upstream fetch timeout


class FederationService:
    """Wires the aggregator, scheduler and enabled outputs, and owns process lifetime."""

    def __init__(self, app_config: AppConfig, version_info: Optional[VersionInfo] = None,
                 aggregator: Optional[Aggregator] = None):
        self.config = app_config
        self.running = True
        self.stop_event = threading.Event()

        self.aggregator = aggregator or Aggregator(
            app_config.upstreams,
            app_config.selector,
            app_config.defaults,
            app_config.merge_policy,
        )

        self.cache: Optional[SnapshotCache] = None
        self.http_server: Optional[HTTPServer] = None
        http_output = app_config.http_output
        if http_output.enabled:
            self.cache = SnapshotCache()
            self.http_server = HTTPServer(self.cache, http_output.host, http_output.port, http_output.path, version_info)

        self.file_writer: Optional[FileWriter] = None
        file_output = app_config.file_output
        if file_output.enabled:
            self.file_writer = FileWriter(file_output.path, file_output.interval)

        self.scheduler = Scheduler(self.aggregator, app_config.poll_interval, self.cache, self.file_writer)

    def start(self) -> None:
        """Bind the HTTP output (fatal on failure) and start the background threads."""
        if self.http_server is not None:
            self.http_server.bind()
        if self.file_writer is not None:
            self.file_writer.start()
        self.scheduler.start()

    def run(self) -> int:
        logger.info("Starting traefik-fed...")
        signal.signal(signal.SIGINT, self.shutdown)
        signal.signal(signal.SIGTERM, self.shutdown)

        exit_code = 0
        try:
            self.start()
            if self.http_server is not None:
                self.http_server.serve()
            else:
                # Keep main thread alive until shutdown
                while self.running and not self.stop_event.is_set():
                    self.stop_event.wait(1)
        except ServingFailure as e:
            logger.error(f"HTTP server failed: {e}")
            exit_code = 1
        finally:
            self.stop()
        return exit_code

    def stop(self) -> None:
        self.running = False
        self.stop_event.set()
        self.scheduler.stop(timeout=STOP_TIMEOUT)
        if self.file_writer is not None:
            self.file_writer.stop(timeout=STOP_TIMEOUT)
        logger.info("traefik-fed stopped.")

    def shutdown(self, signum=None, frame=None):
        logger.info(f"Shutdown signal received ({signum if signum else 'programmatically'}). Stopping traefik-fed...")
        self.running = False
        self.stop_event.set()
        if self.http_server is not None:
            self.http_server.shutdown()
