"""Instance registry for tracking supervised guests."""

from __future__ import annotations

import threading
import time
import warnings
from typing import TYPE_CHECKING

from guest_supervisor.errors import UnknownInstance

if TYPE_CHECKING:
    from guest_supervisor.instance import Instance


class InstanceRegistry:
    """Thread-safe map of instance id to Instance.

    The registry lock only guards the map itself. Per-instance state is
    guarded by each instance's own lock.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._instances: dict[int, Instance] = {}

    def add(self, instance: Instance) -> None:
        """Register a new instance. Ids are never reused within one registry lifetime."""
        with self._lock:
            if instance.instance_id in self._instances:
                msg = f"instance id {instance.instance_id} was already used in this run"
                raise ValueError(msg)
            self._instances[instance.instance_id] = instance

    def get(self, instance_id: int) -> Instance:
        with self._lock:
            try:
                return self._instances[instance_id]
            except KeyError:
                raise UnknownInstance(instance_id) from None

    def __contains__(self, instance_id: object) -> bool:
        with self._lock:
            return instance_id in self._instances

    def ids(self) -> list[int]:
        with self._lock:
            return sorted(self._instances)

    def list_running(self) -> list[Instance]:
        with self._lock:
            return [inst for inst in self._instances.values() if inst.running]

    def reset(self) -> None:
        """Forget every instance, e.g. between independent test runs."""
        with self._lock:
            self._instances.clear()

    def dump_running(self) -> None:
        """Report running instances, to help diagnose a hung test."""
        running = self.list_running()
        if not running:
            warnings.warn("NO RUNNING GUEST INSTANCES", UserWarning, stacklevel=2)
            return

        warnings.warn("RUNNING GUEST INSTANCES:", UserWarning, stacklevel=2)

        now = time.time()
        for inst in running:
            last = inst.last_line_time
            since_out_str = f"{(now - last):.1f}s" if last is not None else "no-output"
            warnings.warn(
                f"  {inst.instance_id}. pid={inst.pid} duration={(now - inst.start_time):.1f}s "
                f"last_output={since_out_str} last_line={inst.last_line!r}",
                UserWarning,
                stacklevel=2,
            )
