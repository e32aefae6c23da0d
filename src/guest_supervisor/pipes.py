"""Line-oriented access to a guest's named pipes.

The console and control channels are FIFOs created by the guest launcher. They
are opened read-write so that neither side sees EOF while the other end is
reopened, and so that opening never blocks waiting for a peer.
"""

import contextlib
import logging
import os
import select
import threading
import time
from collections.abc import Callable, Collection
from dataclasses import dataclass
from pathlib import Path

from guest_supervisor.config import PipeLayout
from guest_supervisor.errors import InstanceDead, LaunchTimeout

logger = logging.getLogger(__name__)


class LineReader:
    """Reads newline-terminated lines from a file descriptor.

    Reads are polled with select() so a waiting caller can be released by
    setting a cancellation event. Bytes past the first newline are buffered for
    the next call.
    """

    def __init__(self, fd: int, name: str) -> None:
        self._fd = fd
        self._buffer = bytearray()
        self._closed = False
        self.name = name

    def fileno(self) -> int:
        return self._fd

    @property
    def closed(self) -> bool:
        return self._closed

    def _pop_line(self) -> str | None:
        idx = self._buffer.find(b"\n")
        if idx < 0:
            return None
        raw = bytes(self._buffer[:idx])
        del self._buffer[: idx + 1]
        return raw.decode("utf-8", errors="replace").rstrip("\r")

    def readline(self, cancel: threading.Event, poll_interval: float = 0.1) -> str | None:
        """Block until a full line is available.

        Returns:
            The line without its terminator, or None if cancelled or at EOF.
        """
        while True:
            line = self._pop_line()
            if line is not None:
                return line
            if cancel.is_set() or self._closed:
                return None
            ready, _, _ = select.select([self._fd], [], [], poll_interval)
            if not ready:
                continue
            chunk = os.read(self._fd, 4096)
            if not chunk:
                logger.debug("EOF on %s", self.name)
                return None
            self._buffer += chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            os.close(self._fd)
        except OSError as e:
            logger.debug("Closing %s failed: %s", self.name, e)


class LineWriter:
    """Writes whole lines to a file descriptor, unbuffered."""

    def __init__(self, fd: int, name: str) -> None:
        self._fd = fd
        self._closed = False
        self.name = name

    def fileno(self) -> int:
        return self._fd

    @property
    def closed(self) -> bool:
        return self._closed

    def write_line(self, text: str) -> None:
        if self._closed:
            msg = f"write to closed pipe {self.name}"
            raise ValueError(msg)
        data = memoryview((text + "\n").encode("utf-8"))
        while data:
            written = os.write(self._fd, data)
            data = data[written:]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            os.close(self._fd)
        except OSError as e:
            logger.debug("Closing %s failed: %s", self.name, e)


@dataclass
class GuestPipes:
    """The four pipe handles of one instance, owned and released together."""

    console_in: LineWriter
    console_out: LineReader
    control_in: LineWriter
    control_out: LineReader

    @classmethod
    def from_fds(cls, console_in: int, console_out: int, control_in: int, control_out: int) -> "GuestPipes":
        return cls(
            console_in=LineWriter(console_in, "console-in"),
            console_out=LineReader(console_out, "console-out"),
            control_in=LineWriter(control_in, "control-in"),
            control_out=LineReader(control_out, "control-out"),
        )

    def close(self, keep: Collection[LineReader] = ()) -> None:
        """Close every handle except those in ``keep``, which the caller still owns."""
        for handle in (self.console_in, self.console_out, self.control_in, self.control_out):
            if any(handle is kept for kept in keep):
                continue
            handle.close()


def wait_for_path(
    path: Path,
    instance_id: int,
    is_running: Callable[[], bool],
    poll_interval: float,
    timeout: float,
) -> None:
    """Poll until ``path`` exists, the instance dies, or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while not path.exists():
        if not is_running():
            msg = f"guest exited while waiting for {path}"
            raise InstanceDead(instance_id, msg)
        if time.monotonic() >= deadline:
            msg = f"{path} did not appear within {timeout} seconds"
            raise LaunchTimeout(instance_id, msg)
        logger.info("Waiting on %s", path)
        time.sleep(poll_interval)


def open_guest_pipes(
    layout: PipeLayout,
    instance_id: int,
    is_running: Callable[[], bool],
    poll_interval: float = 1.0,
    timeout: float = 60.0,
) -> GuestPipes:
    """Wait for and open an instance's FIFOs, console pair first."""
    fds: list[int] = []
    try:
        for path in layout.paths(instance_id):
            wait_for_path(path, instance_id, is_running, poll_interval, timeout)
            fds.append(os.open(path, os.O_RDWR))
    except BaseException:
        for fd in fds:
            with contextlib.suppress(OSError):
                os.close(fd)
        raise
    console_in, console_out, control_in, control_out = fds
    logger.debug("Opened pipes for instance %d in %s", instance_id, layout.directory)
    return GuestPipes.from_fds(console_in, console_out, control_in, control_out)
