"""Guest launcher: builds the launcher command line and owns spawned processes."""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import subprocess
import threading
import time
import warnings
from typing import Any

import psutil

from guest_supervisor.config import SupervisorConfig
from guest_supervisor.process_utils import terminate_process_tree

logger = logging.getLogger(__name__)


class GuestLauncher:
    """Spawns guest processes and remembers every one it started."""

    def __init__(self, config: SupervisorConfig) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._spawned: list[subprocess.Popen[Any]] = []

    def build_command(self, instance_id: int, args: str = "") -> list[str]:
        return [
            *self._config.launcher,
            self._config.pipe_flag.format(id=instance_id),
            *shlex.split(args),
        ]

    def spawn(self, instance_id: int, args: str = "") -> subprocess.Popen[Any]:
        command = self.build_command(instance_id, args)
        logger.info("Starting instance %d: %s", instance_id, shlex.join(command))

        env = os.environ.copy()
        env["PYTHONUNBUFFERED"] = "1"

        proc = subprocess.Popen(  # noqa: S603
            command,
            cwd=self._config.pipe_dir,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,  # Merge stderr into stdout
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            env=env,
        )
        with self._lock:
            self._spawned.append(proc)
        return proc

    @property
    def spawned(self) -> list[subprocess.Popen[Any]]:
        with self._lock:
            return list(self._spawned)

    def terminate_all(self) -> None:
        """Terminate every spawned process tree that is still alive."""
        for proc in self.spawned:
            if proc.poll() is not None:
                continue
            try:
                pids = terminate_process_tree(proc.pid)
            except (OSError, psutil.Error) as e:
                warnings.warn(f"Failed to terminate process tree {proc.pid}: {e}", UserWarning, stacklevel=2)
                continue
            logger.info("Terminated leftover guest processes %s", pids)

    def reap(self, timeout: float) -> None:
        """Wait up to ``timeout`` for spawned processes and forget those that exited."""
        deadline = time.monotonic() + timeout
        for proc in self.spawned:
            with contextlib.suppress(subprocess.TimeoutExpired):
                proc.wait(timeout=max(deadline - time.monotonic(), 0))
        with self._lock:
            self._spawned = [proc for proc in self._spawned if proc.poll() is None]
