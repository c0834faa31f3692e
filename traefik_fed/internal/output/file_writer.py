import logging
import os
import tempfile
import threading
import time
from typing import Optional

import yaml

from traefik_fed.internal.domain.errors import PersistenceFailure
from traefik_fed.internal.domain.models import UnifiedConfiguration
from traefik_fed.internal.output import render

logger = logging.getLogger(__name__)

FILE_MODE = 0o644


class LatestSlot:
    """Single-slot mailbox: put() overwrites whatever is pending and never blocks."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._value: Optional[UnifiedConfiguration] = None

    def put(self, value: UnifiedConfiguration) -> None:
        with self._lock:
            self._value = value
            self._ready.set()

    def take(self, timeout: Optional[float] = None) -> Optional[UnifiedConfiguration]:
        """Wait up to ``timeout`` seconds and return the pending value, or None."""
        if not self._ready.wait(timeout):
            return None
        with self._lock:
            value = self._value
            self._value = None
            self._ready.clear()
        return value

    def wake(self) -> None:
        self._ready.set()


class FileWriter:
    """Persists the latest snapshot as Traefik file-provider YAML.

    A new snapshot is written as soon as it arrives; every ``interval`` seconds
    the last known snapshot is written again, so an output file deleted or
    truncated by someone else comes back.
    """

    def __init__(self, path: str, interval: float):
        self.path = path
        self.interval = interval
        self.slot = LatestSlot()
        self.stop_event = threading.Event()
        self.current: Optional[UnifiedConfiguration] = None
        self._thread: Optional[threading.Thread] = None

    def submit(self, snapshot: UnifiedConfiguration) -> None:
        self.slot.put(snapshot)

    def write_config(self, snapshot: UnifiedConfiguration) -> None:
        """Write ``snapshot`` atomically: temp file in the same directory, then rename.

        Raises:
            PersistenceFailure: The directory, temp file or rename failed.
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"failed to create directory {directory}: {e}") from e

        try:
            content = render.to_yaml(snapshot)
        except yaml.YAMLError as e:
            raise PersistenceFailure(f"failed to encode YAML: {e}") from e

        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(self.path)}.", suffix=".tmp")
        except OSError as e:
            raise PersistenceFailure(f"failed to create temp file in {directory}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceFailure(f"failed to write {self.path}: {e}") from e

        logger.info(f"Wrote configuration to file {self.path}")

    def _write(self, snapshot: UnifiedConfiguration, reason: str) -> None:
        try:
            self.write_config(snapshot)
        except PersistenceFailure as e:
            logger.error(f"Failed to write config ({reason}): {e}")

    def run(self) -> None:
        logger.info(f"File writer started for {self.path}, interval {self.interval}s")
        next_tick = time.monotonic() + self.interval
        while not self.stop_event.is_set():
            snapshot = self.slot.take(timeout=max(0.0, next_tick - time.monotonic()))
            if self.stop_event.is_set():
                break
            if snapshot is not None:
                self.current = snapshot
                self._write(snapshot, "new snapshot")
            if time.monotonic() >= next_tick:
                if snapshot is None and self.current is not None:
                    self._write(self.current, "timer")
                next_tick = time.monotonic() + self.interval
        logger.info("File writer stopped.")

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="file-writer", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 10) -> None:
        self.stop_event.set()
        self.slot.wake()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
