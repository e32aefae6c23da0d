"""Watchdog module.

This module contains the Watchdog class, which kills an instance that has
not produced a line of console output within one check interval.
"""

import _thread
import logging
import threading
import traceback
from collections.abc import Callable
from typing import TYPE_CHECKING

from guest_supervisor.process_utils import describe_process

if TYPE_CHECKING:
    from guest_supervisor.instance import Instance

logger = logging.getLogger(__name__)


class Watchdog:
    """Background liveness check for a single instance.

    It cannot tell a hung guest from a slow one; any interval without a
    successful read counts as a hang.
    """

    def __init__(self, instance: "Instance", interval: float, on_expire: Callable[[], None]) -> None:
        self._instance = instance
        self._interval = interval
        self._on_expire = on_expire
        self._thread: threading.Thread | None = None
        self.expired = False

    def start(self) -> None:
        name = f"GuestWatchdog-{self._instance.instance_id}"
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _expire(self) -> None:
        inst = self._instance
        logger.warning(
            "Instance %d produced no output for %.1f seconds, killing it (last line: %r)",
            inst.instance_id,
            self._interval,
            inst.last_line,
        )
        logger.debug("%s", describe_process(inst.pid))
        self.expired = True
        self._on_expire()

    def _run(self) -> None:
        try:
            # stopped is set by kill, which ends the loop early
            while not self._instance.stopped.wait(self._interval):
                if not self._instance.consume_liveness():
                    self._expire()
                    break
        except KeyboardInterrupt:
            logger.warning("Thread %s caught KeyboardInterrupt", threading.current_thread().name)
            traceback.print_exc()
            _thread.interrupt_main()
            raise

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread
