"""Watch mode: re-scan on file changes with at most one scan in flight."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .config import ScanConfig
from .errors import VlayerError
from .file_walker import iter_candidate_files
from .models import ScanResult

logger = logging.getLogger(__name__)


class ScanGate:
    """Runs a scan callable, never more than one at a time.

    A trigger that arrives while a scan is running is dropped and counted in
    ``coalesced``; it is not queued.
    """

    def __init__(
        self,
        scan_fn: Callable[[], ScanResult],
        on_result: Optional[Callable[[ScanResult], None]] = None,
    ):
        self._scan_fn = scan_fn
        self._on_result = on_result
        self._lock = threading.Lock()
        self.runs = 0
        self.coalesced = 0
        self.last_result: Optional[ScanResult] = None
        self.last_error: Optional[Exception] = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def _run_locked(self) -> Optional[ScanResult]:
        try:
            result = self._scan_fn()
        except (VlayerError, OSError) as e:
            logger.error(f"Watch scan failed: {e}")
            self.last_error = e
            return None
        finally:
            self.runs += 1
            self._lock.release()

        self.last_error = None
        self.last_result = result
        if self._on_result is not None:
            self._on_result(result)
        return result

    def _acquire(self) -> bool:
        if self._lock.acquire(blocking=False):
            return True
        self.coalesced += 1
        logger.debug("Scan already running, trigger coalesced")
        return False

    def trigger(self) -> bool:
        """Run a scan in the calling thread; False if one is already running."""
        if not self._acquire():
            return False
        self._run_locked()
        return True

    def trigger_async(self) -> Optional[threading.Thread]:
        """Start a scan on a background thread; None if one is already running."""
        if not self._acquire():
            return None
        thread = threading.Thread(target=self._run_locked, name="vlayer-scan", daemon=True)
        thread.start()
        return thread


class PollingWatcher:
    """Polls file modification times under a project and triggers a gate."""

    def __init__(self, root: str | Path, gate: ScanGate, config: Optional[ScanConfig] = None, interval: float = 1.0):
        self.root = Path(root)
        self.gate = gate
        self.config = config or ScanConfig()
        self.interval = interval
        self._mtimes = self.snapshot()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def snapshot(self) -> dict[str, int]:
        mtimes: dict[str, int] = {}
        for path, relative in iter_candidate_files(self.root, self.config):
            try:
                mtimes[relative] = path.stat().st_mtime_ns
            except OSError:
                # Deleted between listing and stat
                continue
        return mtimes

    def poll_once(self) -> bool:
        """Check for changes once; trigger a background scan if any."""
        current = self.snapshot()
        if current == self._mtimes:
            return False

        changed = {p for p in current.keys() | self._mtimes.keys() if current.get(p) != self._mtimes.get(p)}
        self._mtimes = current
        logger.info(f"Detected {len(changed)} changed file(s), triggering scan")
        self.gate.trigger_async()
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.poll_once()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="vlayer-watch", daemon=True)
        self._thread.start()
        logger.info(f"Watching {self.root} every {self.interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
