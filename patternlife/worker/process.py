"""Process utilities for spawning a detached sweep worker.

Provides cross-platform support for starting the sweeper in the
background, detached from the parent (MCP server) process.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

SWEEP_MODULE = "patternlife.worker.sweep"


def build_sweep_command() -> list[str]:
    """Command line that runs one sweep in a fresh interpreter."""
    return [sys.executable, "-m", SWEEP_MODULE]


def spawn_detached_sweeper(log_file: Path | None = None) -> bool:
    """Spawn the sweep worker as a detached process.

    This function returns immediately without waiting for the worker.

    Args:
        log_file: Optional path to write worker logs. Discarded if None.

    Returns:
        True if the process was spawned successfully, False otherwise.
    """
    cmd = build_sweep_command()
    kwargs: dict = {"stdin": subprocess.DEVNULL, "close_fds": True}

    if sys.platform == "win32":
        # CREATE_NEW_PROCESS_GROUP | DETACHED_PROCESS
        kwargs["creationflags"] = 0x00000200 | 0x00000008
    else:
        kwargs["start_new_session"] = True

    try:
        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "a") as log:
                subprocess.Popen(cmd, stdout=log, stderr=log, **kwargs)
        else:
            subprocess.Popen(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, **kwargs
            )
    except OSError as e:
        logger.error(f"Failed to spawn sweep worker: {e}")
        return False

    logger.info("Sweep worker spawned successfully")
    return True


def is_sweeper_running(lock_path: Path) -> bool:
    """Check whether a sweeper currently holds the sweep lock."""
    if not lock_path.exists():
        return False

    lock = FileLock(str(lock_path), timeout=0)
    try:
        with lock:
            return False
    except Timeout:
        return True


def get_default_log_path(data_dir: Path) -> Path:
    """Default log path for the sweep worker."""
    return data_dir / "logs" / "sweep.log"
