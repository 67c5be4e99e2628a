"""Unit tests for the sweep worker and its process utilities.

Tests the background maintenance pass over patterns.
"""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

from filelock import Timeout

from patternlife.config import Config
from patternlife.container import Container
from patternlife.domain.exceptions import DatabaseError
from patternlife.domain.models import (
    CreateObservationRequest,
    ObservationOutcome,
    PatternLevel,
    StructurePrediction,
)
from patternlife.worker.process import (
    build_sweep_command,
    get_default_log_path,
    is_sweeper_running,
    spawn_detached_sweeper,
)
from patternlife.worker.sweep import LifecycleSweeper, SweepReport


class TestSpawnDetachedSweeper:
    """Tests for the spawn_detached_sweeper function."""

    @patch("patternlife.worker.process.subprocess.Popen")
    def test_spawn_returns_true_on_success(self, mock_popen):
        mock_popen.return_value = MagicMock()

        assert spawn_detached_sweeper() is True
        mock_popen.assert_called_once()

    @patch("patternlife.worker.process.subprocess.Popen")
    def test_spawn_returns_false_on_error(self, mock_popen):
        mock_popen.side_effect = OSError("Failed to spawn")

        assert spawn_detached_sweeper() is False

    def test_command_runs_sweep_module(self):
        cmd = build_sweep_command()

        assert cmd == [sys.executable, "-m", "patternlife.worker.sweep"]

    @patch("patternlife.worker.process.subprocess.Popen")
    def test_spawn_with_log_file(self, mock_popen):
        mock_popen.return_value = MagicMock()

        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = Path(tmpdir) / "logs" / "sweep.log"
            result = spawn_detached_sweeper(log_file=log_path)

            assert result is True
            # Log directory should be created
            assert log_path.parent.exists()

    @patch("patternlife.worker.process.subprocess.Popen")
    def test_spawn_detached_unix(self, mock_popen):
        mock_popen.return_value = MagicMock()

        if sys.platform != "win32":
            spawn_detached_sweeper()

            call_kwargs = mock_popen.call_args[1]
            assert call_kwargs.get("start_new_session") is True
            assert call_kwargs.get("close_fds") is True


class TestIsSweeperRunning:
    def test_false_when_lock_not_exists(self, temp_data_dir: Path):
        assert is_sweeper_running(temp_data_dir / "missing.lock") is False

    def test_false_when_lock_acquirable(self, temp_data_dir: Path):
        lock_path = temp_data_dir / "sweep.lock"
        lock_path.touch()

        assert is_sweeper_running(lock_path) is False


class TestGetDefaultLogPath:
    def test_returns_path_under_data_dir(self, temp_data_dir: Path):
        assert get_default_log_path(temp_data_dir) == temp_data_dir / "logs" / "sweep.log"


class TestSweepReport:
    def test_to_dict(self):
        report = SweepReport(clustering={"acme": ["p1"]}, elapsed_seconds=1.23456)

        data = report.to_dict()

        assert data["clustering"] == {"acme": ["p1"]}
        assert data["elapsed_seconds"] == 1.235
        assert data["interrupted"] is False


def _orphan_request(company: str) -> CreateObservationRequest:
    return CreateObservationRequest(
        input="safety inspection checklist",
        company=company,
        prediction=StructurePrediction(module_type="custom"),
        outcome=ObservationOutcome.ACCEPTED,
    )


class TestLifecycleSweeper:
    """Tests for LifecycleSweeper."""

    def test_uses_container_config(self, container: Container):
        sweeper = LifecycleSweeper(container=container)

        assert sweeper.config is container.config
        assert sweeper.lock_path == container.config.data_dir / "sweep.lock"
        assert sweeper._running is False

    def test_signal_handler_sets_running_false(self, test_config: Config):
        sweeper = LifecycleSweeper(config=test_config)
        sweeper._running = True

        sweeper._handle_signal(15, None)  # SIGTERM

        assert sweeper._running is False

    def test_run_clusters_and_graduates(self, test_config: Config, clock, embedder):
        test_config.cluster_on_capture = False
        container = Container.create(test_config, clock=clock, embedder=embedder)
        for company in ("acme", "globex"):
            for _ in range(3):
                container.lifecycle_service.record_direct(_orphan_request(company))

        report = LifecycleSweeper(container=container).run()

        assert report is not None
        assert report.interrupted is False
        assert set(report.clustering) == {"acme", "globex"}
        assert report.decay["processed_count"] == 0
        # Newly clustered patterns already meet the observation criteria
        assert len(report.graduation["graduated"]) == 2
        levels = {p.level for p in container.pattern_registry.all()}
        assert levels == {PatternLevel.USER}
        container.close()

    def test_run_does_not_close_borrowed_container(self, container: Container):
        LifecycleSweeper(container=container).run()

        # Still usable after the sweep
        assert container.lifecycle_service.pending_approvals() == []

    def test_run_returns_none_when_locked(self, container: Container):
        held = MagicMock()
        held.__enter__.side_effect = Timeout(str(container.config.sweep_lock_path))

        with patch("patternlife.worker.sweep.FileLock", return_value=held):
            assert LifecycleSweeper(container=container).run() is None

    def test_interrupted_sweep_skips_remaining_tasks(self, container: Container):
        sweeper = LifecycleSweeper(container=container)
        service = container.lifecycle_service

        def stop_after_decay(*args, **kwargs):
            sweeper._running = False
            return original(*args, **kwargs)

        original = service.run_decay_sweep
        with patch.object(service, "run_decay_sweep", side_effect=stop_after_decay):
            report = sweeper.run_unlocked()

        assert report.interrupted is True
        assert report.graduation is None


class TestSweepDatabaseFailure:
    def test_database_error_is_reported(self, container: Container):
        sweeper = LifecycleSweeper(container=container)

        with patch.object(
            container.lifecycle_service,
            "run_decay_sweep",
            side_effect=DatabaseError("Failed to open database after 3 attempts"),
        ):
            report = sweeper.run()

        assert report is not None
        assert report.error == "Failed to open database after 3 attempts"
        assert report.interrupted is True
        assert report.graduation is None
        assert report.to_dict()["error"] == report.error
