"""Per-instance supervision state."""

from __future__ import annotations

import subprocess
import threading
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from guest_supervisor.exit_watcher import ExitWatcher
    from guest_supervisor.pipes import GuestPipes
    from guest_supervisor.read_operation import ReadOperation
    from guest_supervisor.watchdog import Watchdog


class Instance:
    """One supervised guest process and everything needed to talk to it.

    ``lock`` guards creation and cancellation of ``read_op`` and teardown of
    ``pipes``. It is never held while a read is blocked on the pipe.
    """

    def __init__(self, instance_id: int, proc: subprocess.Popen[Any]) -> None:
        self.instance_id = instance_id
        self.proc = proc
        self.lock = threading.Lock()
        self.running = True
        self.alive = False
        self.pipes: GuestPipes | None = None
        self.read_op: ReadOperation | None = None
        self.control_read: ReadOperation | None = None
        self.line: str | None = None
        self.last_line: str | None = None
        self.last_line_time: float | None = None
        self.banner: str | None = None
        self.kill_reason: str | None = None
        self.output: list[str] = []
        self.start_time = time.time()
        self.stopped = threading.Event()
        self.exit_watcher: ExitWatcher | None = None
        self.watchdog: Watchdog | None = None

    @property
    def pid(self) -> int:
        return self.proc.pid

    def record_line(self, line: str) -> None:
        # Runs on the read thread; must not take the lock
        self.line = line
        self.last_line = line
        self.last_line_time = time.time()
        self.alive = True

    def record_banner(self, line: str) -> None:
        self.banner = line

    def consume_liveness(self) -> bool:
        """Return whether a line was read since the last call, and reset the flag."""
        alive, self.alive = self.alive, False
        return alive

    def __repr__(self) -> str:
        state = "running" if self.running else f"killed ({self.kill_reason})"
        return f"Instance(id={self.instance_id}, pid={self.proc.pid}, {state})"
