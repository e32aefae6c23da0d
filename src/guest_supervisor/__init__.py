"""Supervision of emulated guests over line-oriented named pipes."""

from __future__ import annotations

__version__ = "1.0.0"

from guest_supervisor.config import PipeLayout, SupervisorConfig
from guest_supervisor.errors import (
    ConcurrentReadError,
    GuestSupervisorError,
    InstanceDead,
    InstanceError,
    LaunchTimeout,
    OutputMismatch,
    ProtocolViolation,
    ReadCancelled,
    UnexpectedTermination,
    UnknownInstance,
)
from guest_supervisor.instance import Instance
from guest_supervisor.pipes import GuestPipes
from guest_supervisor.session import DEFAULT_GUEST_IPS, GuestSession
from guest_supervisor.supervisor import Supervisor

__all__ = [
    "DEFAULT_GUEST_IPS",
    "ConcurrentReadError",
    "GuestPipes",
    "GuestSession",
    "GuestSupervisorError",
    "Instance",
    "InstanceDead",
    "InstanceError",
    "LaunchTimeout",
    "OutputMismatch",
    "PipeLayout",
    "ProtocolViolation",
    "ReadCancelled",
    "Supervisor",
    "SupervisorConfig",
    "UnexpectedTermination",
    "UnknownInstance",
]
