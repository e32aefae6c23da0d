"""Error taxonomy for supervised guest instances.

Every error that concerns a specific instance carries the instance id and the
last line read from its console, so a failed test step can report which guest
went wrong and what it printed last.
"""

from __future__ import annotations


class GuestSupervisorError(Exception):
    """Base class for all supervisor errors."""


class UnknownInstance(GuestSupervisorError, LookupError):
    """Raised when an instance id was never started in this registry."""

    def __init__(self, instance_id: int) -> None:
        self.instance_id = instance_id
        super().__init__(f"instance {instance_id}: not registered")


class InstanceError(GuestSupervisorError):
    """An error attributed to a single instance."""

    def __init__(self, instance_id: int, message: str, last_line: str | None = None) -> None:
        self.instance_id = instance_id
        self.last_line = last_line
        self.reason = message
        text = f"instance {instance_id}: {message}"
        if last_line is not None:
            text += f" (last line: {last_line!r})"
        super().__init__(text)


class InstanceDead(InstanceError):
    """Operation attempted on an instance that has already been killed."""


class ReadCancelled(InstanceError):
    """An in-flight read was aborted by a concurrent kill."""


class ConcurrentReadError(InstanceError):
    """A second read was requested while one is still in flight."""


class LaunchTimeout(InstanceError, TimeoutError):
    """The guest's pipes never appeared on the filesystem."""


class ProtocolViolation(InstanceError):
    """The guest did not follow the expected protocol, e.g. no control banner."""


class UnexpectedTermination(InstanceError):
    """The guest printed a fatal failure signature such as a kernel panic."""


class OutputMismatch(InstanceError, AssertionError):
    """Guest output did not meet a test expectation."""
