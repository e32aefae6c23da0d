"""Shared fixtures for the guest supervisor tests."""

import contextlib
import os
import select
import subprocess
import sys
import time
from collections.abc import Callable
from pathlib import Path

from guest_supervisor import GuestPipes

FAKE_GUEST = Path(__file__).with_name("fake_guest.py")


def spawn_process(code: str = "import time; time.sleep(60)") -> subprocess.Popen:
    """A stand-in guest process with its output piped like the launcher does."""
    return subprocess.Popen(  # noqa: S603
        [sys.executable, "-c", code],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class PipePeer:
    """The guest's side of four anonymous pipes handed to the supervisor."""

    def __init__(self) -> None:
        console_in_r, console_in_w = os.pipe()
        console_out_r, console_out_w = os.pipe()
        control_in_r, control_in_w = os.pipe()
        control_out_r, control_out_w = os.pipe()
        self.pipes = GuestPipes.from_fds(
            console_in=console_in_w,
            console_out=console_out_r,
            control_in=control_in_w,
            control_out=control_out_r,
        )
        self.console_in = console_in_r
        self.console_out = console_out_w
        self.control_in = control_in_r
        self.control_out = control_out_w

    def emit(self, text: str) -> None:
        os.write(self.console_out, (text + "\n").encode("utf-8"))

    def emit_control(self, text: str) -> None:
        os.write(self.control_out, (text + "\n").encode("utf-8"))

    def _read_line(self, fd: int, timeout: float) -> str:
        data = b""
        deadline = time.monotonic() + timeout
        while not data.endswith(b"\n"):
            remaining = deadline - time.monotonic()
            ready, _, _ = select.select([fd], [], [], max(remaining, 0))
            if not ready:
                msg = f"no line within {timeout} seconds (got {data!r})"
                raise TimeoutError(msg)
            data += os.read(fd, 1)
        return data[:-1].decode("utf-8")

    def read_console_line(self, timeout: float = 5.0) -> str:
        return self._read_line(self.console_in, timeout)

    def read_control_line(self, timeout: float = 5.0) -> str:
        return self._read_line(self.control_in, timeout)

    def hang_up(self, end: str) -> None:
        """Close one of the guest's ends, e.g. ``"console_out"`` for console EOF."""
        os.close(getattr(self, end))
        setattr(self, end, -1)

    def close(self) -> None:
        for fd in (self.console_in, self.console_out, self.control_in, self.control_out):
            with contextlib.suppress(OSError):
                os.close(fd)
