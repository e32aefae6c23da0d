"""Configuration for the guest supervisor."""

from __future__ import annotations

import signal
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class PipeLayout:
    """Where an instance's FIFOs live and what they are called.

    Names are seen from the guest: the guest reads ``.in`` and writes ``.out``.
    """

    directory: Path = field(default_factory=lambda: Path("."))
    console_stem: str = "qemu_serial_pipe{id}"
    control_stem: str = "qemu_monitor_pipe{id}"

    def _path(self, stem: str, instance_id: int, suffix: str) -> Path:
        return Path(self.directory) / f"{stem.format(id=instance_id)}.{suffix}"

    def console_in(self, instance_id: int) -> Path:
        return self._path(self.console_stem, instance_id, "in")

    def console_out(self, instance_id: int) -> Path:
        return self._path(self.console_stem, instance_id, "out")

    def control_in(self, instance_id: int) -> Path:
        return self._path(self.control_stem, instance_id, "in")

    def control_out(self, instance_id: int) -> Path:
        return self._path(self.control_stem, instance_id, "out")

    def paths(self, instance_id: int) -> list[Path]:
        """All four paths in the order they are opened."""
        return [
            self.console_in(instance_id),
            self.console_out(instance_id),
            self.control_in(instance_id),
            self.control_out(instance_id),
        ]


@dataclass
class SupervisorConfig:
    """Tunables for launching and supervising guests.

    Args:
        launcher: argv prefix of the launcher script.
        pipe_flag: Flag appended to the launcher argv to select the instance's pipes.
        layout: FIFO location and naming.
        watchdog_interval: Seconds without a successful read before an instance is killed.
        pipe_poll_interval: Seconds between checks for the FIFOs to appear.
        pipe_wait_timeout: Seconds to wait for the FIFOs before giving up.
        kill_signal: Signal sent to the guest process on kill.
        cancel_join_timeout: Seconds kill waits for a cancelled read to wind down.
        read_poll_interval: Seconds a read blocks in select() before rechecking for cancellation.
        cleanup_command: Command run by cleanup_shared_resources(), or None.
    """

    launcher: list[str] = field(default_factory=lambda: ["./boot_qemu"])
    pipe_flag: str = "--pipe{id}"
    layout: PipeLayout = field(default_factory=PipeLayout)
    watchdog_interval: float = 10.0
    pipe_poll_interval: float = 1.0
    pipe_wait_timeout: float = 60.0
    kill_signal: int = signal.SIGINT
    cancel_join_timeout: float = 1.0
    read_poll_interval: float = 0.1
    cleanup_command: list[str] | None = field(default_factory=lambda: ["./boot_qemu", "--cleanup"])

    @property
    def pipe_dir(self) -> Path:
        return Path(self.layout.directory)
