"""Guest-level helpers for writing test steps against a supervised instance.

These are thin loops over Supervisor.next_line() and write_line(): booting
until init announces itself, waiting for a clean power-down, pinging between
guests and checking that output does not contain some text.
"""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING

from guest_supervisor.errors import OutputMismatch, UnexpectedTermination
from guest_supervisor.patterns import (
    BOOT_PANIC,
    INIT_RUNNING,
    KERNEL_PANIC,
    PING_NO_LOSS,
    PING_SUMMARY,
    POWER_DOWN,
)

if TYPE_CHECKING:
    from guest_supervisor.supervisor import Supervisor

logger = logging.getLogger(__name__)

DEFAULT_GUEST_IPS = ("10.0.2.15", "10.0.2.16")


class GuestSession:
    """Test-step vocabulary bound to one instance id."""

    def __init__(self, supervisor: Supervisor, instance_id: int = 0, ip: str | None = None) -> None:
        self.supervisor = supervisor
        self.instance_id = instance_id
        self.ip = ip

    def boot(self, args: str = "") -> None:
        """Start the guest, wait for init, and configure its address."""
        self.supervisor.start(self.instance_id, args)
        self.wait_for_boot()
        # Boot output must not leave the control channel out of sync
        self.supervisor.ensure_control_banner(self.instance_id)
        if self.ip is not None:
            self.set_ip()

    def wait_for_boot(self) -> None:
        while True:
            line = self.supervisor.next_line(self.instance_id)
            if INIT_RUNNING.match(line):
                logger.info("Instance %d booted", self.instance_id)
                return
            if BOOT_PANIC.match(line):
                raise UnexpectedTermination(self.instance_id, "kernel panic during init", line)

    def wait_for_power_down(self) -> None:
        """Read until the guest reports it has powered down."""
        while True:
            line = self.supervisor.next_line(self.instance_id)
            if POWER_DOWN.search(line):
                return
            logger.info("[%d] %s", self.instance_id, line)
            if KERNEL_PANIC.match(line):
                raise UnexpectedTermination(self.instance_id, "kernel panic during shutdown", line)

    def shutdown(self) -> None:
        self.supervisor.kill(self.instance_id)

    def set_ip(self) -> None:
        if self.ip is None:
            msg = f"instance {self.instance_id} has no ip configured"
            raise ValueError(msg)
        self.supervisor.write_line(self.instance_id, f"ifconfig eth0 {self.ip}")

    def execute(self, command: str, settle: float = 1.0) -> None:
        """Run a command in the guest and give it ``settle`` seconds to act."""
        self.supervisor.write_line(self.instance_id, command)
        time.sleep(settle)

    def ping(self, target_ip: str, count: int, size: int = 5000) -> str:
        """Ping ``target_ip`` from this guest and require zero packet loss.

        Returns:
            The ping summary line.
        """
        self.supervisor.write_line(self.instance_id, f"ping -c {count} -s {size} {target_ip}")
        while True:
            line = self.supervisor.next_line(self.instance_id)
            if PING_SUMMARY.match(line):
                break
        logger.info("[%d] %s", self.instance_id, line)
        if not PING_NO_LOSS.match(line):
            raise OutputMismatch(self.instance_id, f"ping to {target_ip} lost packets", line)
        return line

    def expect_absent(self, text: str, stop_at: str) -> None:
        """Read up to a line matching ``stop_at`` and fail if ``text`` shows up first.

        ``text`` is a literal substring; ``stop_at`` is a regular expression.
        """
        needle = re.compile(re.escape(text))
        stop = re.compile(stop_at)
        while True:
            line = self.supervisor.next_line(self.instance_id)
            logger.debug("[%d] %r", self.instance_id, line)
            if needle.search(line):
                raise OutputMismatch(self.instance_id, f"unexpected output {text!r}", line)
            if stop.search(line):
                return
