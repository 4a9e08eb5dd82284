"""Main agent process orchestrator."""

import logging
import threading
from pathlib import Path
from typing import List, Optional

from .config import AgentConfig
from .exceptions import AgentAlreadyRunningError
from .fs_watcher import FSWatcher
from .tracker import ChangeTracker

logger = logging.getLogger(__name__)


class AgentProcess:
    """
    Main orchestrator for one monitored root.

    Wires the watchdog adapter into a ChangeTracker and runs the
    maintenance loop that sweeps self-change entries, expires stale
    generations and checks the observer's health.
    """

    def __init__(
        self,
        root: Path,
        config: Optional[AgentConfig] = None,
        tracker: Optional[ChangeTracker] = None,
    ):
        """
        Initialize the agent process.

        Args:
            root: Directory to watch
            config: Agent configuration
            tracker: Existing tracker to feed (one is created if omitted)
        """
        self.root = Path(root).resolve()
        if not self.root.exists():
            raise FileNotFoundError(f"Root does not exist: {self.root}")

        self.config = config or AgentConfig()
        self.tracker = tracker or ChangeTracker(self.config)

        self._watcher = FSWatcher(
            self.root,
            self.tracker.ingest,
            self.config,
            on_error=self.tracker.report_watcher_error,
        )

        self._running = False
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    def start(self) -> None:
        """
        Start the agent (blocking).

        Blocks until stop() is called or the process is interrupted.

        Raises:
            AgentAlreadyRunningError: If already running
        """
        self.start_async()

        try:
            while not self._stop_event.is_set():
                self._stop_event.wait(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            self._shutdown()

    def start_async(self) -> None:
        """
        Start the agent in the background.

        Raises:
            AgentAlreadyRunningError: If already running
        """
        with self._lock:
            if self._running:
                raise AgentAlreadyRunningError("Agent is already running")

            self._running = True
            self._stop_event.clear()

        self._watcher.start()

        self._threads = [
            threading.Thread(target=self._maintenance_loop, name="AgentMaintenance"),
        ]
        for thread in self._threads:
            thread.daemon = True
            thread.start()

        logger.info(f"Agent started for {self.root}")

    def stop(self) -> None:
        """Stop the agent gracefully."""
        self._stop_event.set()
        self._shutdown()

    def _shutdown(self) -> None:
        """Internal shutdown procedure."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        self._watcher.stop()

        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=2.0)
        self._threads.clear()

        logger.info(f"Agent stopped for {self.root}")

    def run_maintenance(self) -> None:
        """One pass of the maintenance work."""
        self.tracker.sweep_self_changes()
        self.tracker.expire_snapshot()

        if not self._watcher.is_healthy():
            self.tracker.report_watcher_error(f"observer for {self.root} stopped unexpectedly")
            self._watcher.stop()

    def _maintenance_loop(self) -> None:
        """Worker loop for periodic maintenance."""
        interval = self.config.maintenance_interval_ms / 1000.0
        logger.debug(f"Maintenance loop started, interval={interval}s")

        while not self._stop_event.is_set():
            try:
                self.run_maintenance()
            except Exception as e:
                logger.error(f"Maintenance loop error: {e}")

            self._stop_event.wait(timeout=interval)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_watching(self) -> bool:
        return self._watcher.is_watching()

    def close(self) -> None:
        """Stop the agent and release all resources."""
        self.stop()
        self.tracker.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
