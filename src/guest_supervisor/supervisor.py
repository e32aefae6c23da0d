"""Supervision of guest instances that talk over named pipes.

## Basic Usage

```python
supervisor = Supervisor(SupervisorConfig(launcher=["./boot_qemu"]))
supervisor.start(0, "--net ne2k_pci,macaddr=0A:0A:0A:0A:0A:0A")

while "init running" not in supervisor.next_line(0):
    pass
supervisor.ensure_control_banner(0)

supervisor.write_line(0, "echo hi")
print(supervisor.next_line_skipping(0))  # "hi"

supervisor.kill(0)
supervisor.cleanup_shared_resources()
```

## Cancellation

`next_line()` blocks with no timeout of its own. Each instance has a watchdog
that kills it after `watchdog_interval` seconds without a successful read,
and an exit watcher that kills it when the guest process exits. Either way a
blocked `next_line()` raises `ReadCancelled`, and every later read or write
raises `InstanceDead`.
"""

from __future__ import annotations

import logging
import re
import subprocess
import warnings
from collections.abc import Iterable
from typing import Any

from guest_supervisor.config import SupervisorConfig
from guest_supervisor.errors import (
    ConcurrentReadError,
    InstanceDead,
    LaunchTimeout,
    ProtocolViolation,
    ReadCancelled,
    UnknownInstance,
)
from guest_supervisor.exit_watcher import ExitWatcher
from guest_supervisor.instance import Instance
from guest_supervisor.launcher import GuestLauncher
from guest_supervisor.patterns import PRINTK_TIMESTAMP
from guest_supervisor.pipes import GuestPipes, LineWriter, open_guest_pipes
from guest_supervisor.read_operation import ReadOperation
from guest_supervisor.registry import InstanceRegistry
from guest_supervisor.watchdog import Watchdog

logger = logging.getLogger(__name__)


class Supervisor:
    """Starts, reads from, writes to and kills guest instances by id."""

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self.config = config if config is not None else SupervisorConfig()
        self.registry = InstanceRegistry()
        self.launcher = GuestLauncher(self.config)

    # Launch

    def start(self, instance_id: int, args: str = "") -> Instance:
        """Launch a guest and wait for its pipes.

        Raises:
            ValueError: If the id was already used in this run.
            LaunchTimeout: If the pipes never appear.
            InstanceDead: If the guest exits before its pipes are open.
        """
        if instance_id in self.registry:
            msg = f"instance id {instance_id} was already used in this run"
            raise ValueError(msg)

        proc = self.launcher.spawn(instance_id, args)
        instance = self._register(instance_id, proc)
        try:
            pipes = open_guest_pipes(
                self.config.layout,
                instance_id,
                is_running=lambda: instance.running,
                poll_interval=self.config.pipe_poll_interval,
                timeout=self.config.pipe_wait_timeout,
            )
        except (LaunchTimeout, OSError):
            self.kill(instance_id, reason="launch failed")
            raise
        self._attach(instance, pipes, read_banner=True)
        return instance

    def adopt(
        self,
        instance_id: int,
        proc: subprocess.Popen[Any],
        pipes: GuestPipes,
        read_banner: bool = False,
    ) -> Instance:
        """Supervise a process that was spawned and connected by the caller."""
        instance = self._register(instance_id, proc)
        self._attach(instance, pipes, read_banner=read_banner)
        return instance

    def _register(self, instance_id: int, proc: subprocess.Popen[Any]) -> Instance:
        instance = Instance(instance_id, proc)
        self.registry.add(instance)

        def _on_exit(returncode: int) -> None:
            self.kill(instance_id, reason=f"process exited (rc={returncode})")

        instance.exit_watcher = ExitWatcher(instance, on_exit=_on_exit)
        instance.exit_watcher.start()
        return instance

    def _attach(self, instance: Instance, pipes: GuestPipes, read_banner: bool) -> None:
        instance_id = instance.instance_id
        with instance.lock:
            if not instance.running:
                pipes.close()
                msg = f"killed during launch ({instance.kill_reason})"
                raise InstanceDead(instance_id, msg, instance.last_line)
            instance.pipes = pipes
            if read_banner:
                # Skip the control channel's greeting so later commands stay in sync
                op = ReadOperation(
                    pipes.control_out,
                    instance.record_banner,
                    name=f"GuestBanner-{instance_id}",
                    poll_interval=self.config.read_poll_interval,
                )
                instance.control_read = op
                op.start()

        instance.watchdog = Watchdog(
            instance,
            self.config.watchdog_interval,
            on_expire=lambda: self.kill(instance_id, reason="watchdog timeout"),
        )
        instance.watchdog.start()
        logger.info("Instance %d is up (pid %d)", instance_id, instance.pid)

    def ensure_control_banner(self, instance_id: int) -> None:
        """Raise ProtocolViolation unless the control banner has been read.

        Raises InstanceDead instead if the instance was killed, since a kill
        also cancels the banner read.
        """
        instance = self.registry.get(instance_id)
        if not instance.running:
            raise self._dead(instance)
        if instance.banner is None:
            raise ProtocolViolation(instance_id, "control banner was never read", instance.last_line)
        logger.debug("Instance %d control banner: %s", instance_id, instance.banner)

    # Line I/O

    def _dead(self, instance: Instance) -> InstanceDead:
        reason = instance.kill_reason or ("pipes not open" if instance.running else "not running")
        return InstanceDead(instance.instance_id, f"instance is dead ({reason})", instance.last_line)

    def next_line(self, instance_id: int) -> str:
        """Block until the next console line arrives or the instance is killed.

        Raises:
            InstanceDead: The instance was already killed.
            ReadCancelled: The instance was killed while this read was waiting,
                or the console reached EOF, which kills the instance.
            ConcurrentReadError: Another read on this instance is still in flight.
        """
        instance = self.registry.get(instance_id)
        with instance.lock:
            if not instance.running or instance.pipes is None:
                raise self._dead(instance)
            if instance.read_op is not None:
                raise ConcurrentReadError(instance_id, "a read is already in flight", instance.last_line)
            instance.line = None
            op = ReadOperation(
                instance.pipes.console_out,
                instance.record_line,
                name=f"GuestRead-{instance_id}",
                poll_interval=self.config.read_poll_interval,
            )
            instance.read_op = op
            op.start()

        # Waiting without the lock lets kill() cancel this read
        op.join()

        with instance.lock:
            if instance.read_op is op:
                instance.read_op = None

        line = instance.line
        if line is None:
            if instance.kill_reason is None:
                # Nothing cancelled the read, so the console hit EOF
                self.kill(instance_id, reason="console closed")
            raise ReadCancelled(instance_id, f"read cancelled ({instance.kill_reason})", instance.last_line)
        logger.debug("[%d] %s", instance_id, line)
        return line

    def next_line_skipping(self, instance_id: int, pattern: str | re.Pattern[str] = PRINTK_TIMESTAMP) -> str:
        """Return the next console line that does not match ``pattern``."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        while True:
            line = self.next_line(instance_id)
            if not regex.search(line):
                return line

    def _write(self, instance_id: int, text: str, control: bool) -> None:
        instance = self.registry.get(instance_id)
        pipes = instance.pipes
        if not instance.running or pipes is None:
            raise self._dead(instance)
        writer: LineWriter = pipes.control_in if control else pipes.console_in
        try:
            writer.write_line(text)
        except (OSError, ValueError) as e:
            if not instance.running:
                raise self._dead(instance) from e
            raise
        logger.debug("[%d] %s> %s", instance_id, "control" if control else "console", text)

    def write_line(self, instance_id: int, text: str) -> None:
        """Send one line to the guest console."""
        self._write(instance_id, text, control=False)

    def write_control_line(self, instance_id: int, text: str) -> None:
        """Send one line to the guest's control (monitor) channel."""
        self._write(instance_id, text, control=True)

    # Termination

    def _signal(self, instance: Instance) -> None:
        if instance.proc.poll() is not None:
            return
        try:
            instance.proc.send_signal(self.config.kill_signal)
        except OSError as e:
            logger.debug("Signalling pid %d failed: %s", instance.pid, e)

    def kill(self, instance_id: int, reason: str = "shutdown") -> None:
        """Terminate an instance. Only the first call does anything.

        Signals the process, cancels any in-flight reads and closes all four
        pipe handles. The FIFO files are left for cleanup_shared_resources().
        """
        try:
            instance = self.registry.get(instance_id)
        except UnknownInstance:
            logger.warning("Ignoring kill of unknown instance %d", instance_id)
            return

        with instance.lock:
            if not instance.running:
                logger.debug("Instance %d already killed (%s)", instance_id, instance.kill_reason)
                return
            instance.running = False
            instance.kill_reason = reason
            self._signal(instance)

            ops = [op for op in (instance.read_op, instance.control_read) if op is not None]
            for op in ops:
                op.cancel()
            in_use = []
            for op in ops:
                if not op.join(self.config.cancel_join_timeout):
                    warnings.warn(f"Read on instance {instance_id} did not stop after cancel", stacklevel=2)
                    # The thread may still touch this descriptor
                    op.close_reader_when_done()
                    in_use.append(op.reader)
            instance.read_op = None
            instance.control_read = None

            if instance.pipes is not None:
                instance.pipes.close(keep=in_use)
                instance.pipes = None

        instance.stopped.set()
        logger.info("Killed instance %d: %s", instance_id, reason)

    # Queries

    def is_running(self, instance_id: int) -> bool:
        return self.registry.get(instance_id).running

    def last_line(self, instance_id: int) -> str | None:
        return self.registry.get(instance_id).last_line

    def dump_running(self) -> None:
        self.registry.dump_running()

    # Run-wide housekeeping

    def cleanup_shared_resources(self) -> None:
        """Reclaim everything the run left behind. Best effort, never raises.

        Call once all instances are finished: this removes the FIFO files and
        terminates any process tree the launcher started.
        """
        for instance in self.registry.list_running():
            self.kill(instance.instance_id, reason="cleanup")

        self.launcher.terminate_all()
        self.remove_pipe_files()

        command = self.config.cleanup_command
        if not command:
            return
        try:
            result = subprocess.run(  # noqa: S603
                command,
                cwd=self.config.pipe_dir,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            warnings.warn(f"Cleanup command {command} failed to run: {e}", UserWarning, stacklevel=2)
            return
        if result.returncode != 0:
            warnings.warn(
                f"Cleanup command {command} exited with {result.returncode}: {result.stdout.strip()}",
                UserWarning,
                stacklevel=2,
            )

    def remove_pipe_files(self, instance_ids: Iterable[int] | None = None) -> None:
        """Unlink the FIFOs of ``instance_ids`` (default: every registered id).

        Missing files are skipped. Any other failure becomes a warning.
        """
        if instance_ids is None:
            instance_ids = self.registry.ids()
        for instance_id in instance_ids:
            for path in self.config.layout.paths(instance_id):
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    warnings.warn(f"Could not remove {path}: {e}", UserWarning, stacklevel=2)
                    continue
                logger.debug("Removed %s", path)

    def reset(self, reap_timeout: float = 5.0) -> None:
        """Kill anything still running and start a fresh registry.

        Launched processes that exit within ``reap_timeout`` are reaped and
        forgotten. Stragglers stay with the launcher so that
        cleanup_shared_resources() can still terminate them.
        """
        for instance in self.registry.list_running():
            self.kill(instance.instance_id, reason="reset")
        self.launcher.reap(reap_timeout)
        self.registry.reset()
