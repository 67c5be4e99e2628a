"""Lifecycle Sweeper - Periodic maintenance pass over all patterns.

One sweep performs, in order:

1. Decay: lower the quality score of patterns that have not been used
2. Clustering: mint patterns from orphan observations of every company
3. Graduation: promote eligible patterns and queue approval-gated ones

The sweeper holds a file lock for the duration of the pass so that only
one sweeper works on a data directory at a time. Run it from a scheduler
(cron, systemd timer) or spawn it detached from the server.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import time
from dataclasses import dataclass, field
from typing import Any

from filelock import FileLock, Timeout

from ..config import Config, get_config
from ..container import Container
from ..domain.exceptions import DatabaseError

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """What one sweep did."""

    decay: dict[str, Any] | None = None
    clustering: dict[str, list[str]] = field(default_factory=dict)
    graduation: dict[str, Any] | None = None
    interrupted: bool = False
    elapsed_seconds: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "decay": self.decay,
            "clustering": self.clustering,
            "graduation": self.graduation,
            "interrupted": self.interrupted,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "error": self.error,
        }


class LifecycleSweeper:
    """Runs decay, clustering and graduation over the whole store.

    Can run against an existing container (in-process, e.g. from the
    server) or build its own from the configuration (worker process).
    """

    def __init__(
        self,
        config: Config | None = None,
        container: Container | None = None,
        lock_timeout: float = 5.0,
        install_signal_handlers: bool = False,
    ) -> None:
        """Initialize the sweeper.

        Args:
            config: patternlife configuration. Uses default if not provided.
            container: Container to sweep. Built from ``config`` if not provided.
            lock_timeout: Seconds to wait for the sweep lock.
            install_signal_handlers: Stop gracefully on SIGTERM/SIGINT.
        """
        self.config = config or (container.config if container else get_config())
        self.lock_timeout = lock_timeout
        self._container = container
        self._owns_container = container is None
        self._running = False
        self.lock_path = self.config.sweep_lock_path

        if install_signal_handlers:
            signal.signal(signal.SIGTERM, self._handle_signal)
            signal.signal(signal.SIGINT, self._handle_signal)

    def _handle_signal(self, signum: int, frame: object) -> None:
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, shutting down...")
        self._running = False

    def _get_container(self) -> Container:
        if self._container is None:
            self._container = Container.create(self.config)
        return self._container

    def run(self) -> SweepReport | None:
        """Acquire the sweep lock and run one sweep.

        Returns:
            The sweep report, or None if another sweeper holds the lock.
            A sweep that cannot reach the database reports it in ``error``.
        """
        logger.info("Lifecycle sweeper starting...")
        logger.info(f"Data directory: {self.config.data_dir}")

        self.config.data_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.lock_path), timeout=self.lock_timeout)

        try:
            with lock:
                logger.info("Lock acquired, starting sweep...")
                return self.run_unlocked()
        except Timeout:
            logger.info("Could not acquire sweep lock (another sweeper is running)")
            return None
        finally:
            self._cleanup()

    def run_unlocked(self) -> SweepReport:
        """Run one sweep without taking the file lock."""
        self._running = True
        start_time = time.time()
        report = SweepReport()
        try:
            self._sweep(report)
        except DatabaseError as e:
            logger.error(f"Sweep aborted: {e}")
            report.error = str(e)
            self._running = False

        report.interrupted = not self._running
        report.elapsed_seconds = time.time() - start_time
        self._running = False
        logger.info(f"Sweep completed in {report.elapsed_seconds:.2f}s")
        return report

    def _sweep(self, report: SweepReport) -> None:
        service = self._get_container().lifecycle_service

        logger.info("Task 1: Applying quality decay...")
        report.decay = service.run_decay_sweep().model_dump(mode="json")

        if self._running:
            logger.info("Task 2: Clustering orphan observations...")
            for company in self._get_container().observation_store.companies():
                if not self._running:
                    break
                created = service.cluster_orphans(company)
                if created:
                    report.clustering[company] = [p.id for p in created]

        if self._running:
            logger.info("Task 3: Checking graduations...")
            report.graduation = service.run_graduation_sweep().to_dict()

    def _cleanup(self) -> None:
        """Close the container if this sweeper created it."""
        if self._owns_container and self._container is not None:
            try:
                self._container.close()
            except Exception as e:
                logger.warning(f"Error closing container: {e}")
            self._container = None


def main() -> None:
    """Entry point for the sweep worker process."""
    logging.basicConfig(
        level=os.environ.get("PATTERNLIFE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    sweeper = LifecycleSweeper(install_signal_handlers=True)
    report = sweeper.run()
    if report is not None:
        logger.info(f"Sweep report: {report.to_dict()}")
        if report.error:
            sys.exit(1)


if __name__ == "__main__":
    main()
