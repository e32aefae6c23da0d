#!/usr/bin/env python3
"""Process utilities for describing and terminating guest process trees."""

from __future__ import annotations

import contextlib
import logging

import psutil

logger = logging.getLogger(__name__)


def describe_process(pid: int) -> str:
    """One line per process in the tree rooted at ``pid``, for diagnostics."""
    try:
        process = psutil.Process(pid)
        lines = [f"Process {pid} ({process.name()}) status={process.status()}"]
        lines.extend(
            f"  child {child.pid} ({child.name()}) status={child.status()}"
            for child in process.children(recursive=True)
        )
        return "\n".join(lines)
    except psutil.Error:
        return f"Process {pid} is gone"


def terminate_process_tree(pid: int, grace: float = 3.0) -> list[int]:
    """Terminate a process and its descendants, escalating to SIGKILL.

    Only the tree rooted at ``pid`` is touched; nothing else on the system is
    scanned.

    Returns:
        The pids that were signalled.
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return []

    try:
        procs = [*parent.children(recursive=True), parent]
    except psutil.NoSuchProcess:
        procs = [parent]

    for proc in procs:
        with contextlib.suppress(psutil.NoSuchProcess):
            proc.terminate()

    _, alive = psutil.wait_procs(procs, timeout=grace)
    for proc in alive:
        logger.info("Process %d ignored SIGTERM, killing", proc.pid)
        with contextlib.suppress(psutil.NoSuchProcess):
            proc.kill()

    return [proc.pid for proc in procs]
