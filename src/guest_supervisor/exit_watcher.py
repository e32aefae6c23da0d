"""Exit watcher module.

This module contains the ExitWatcher class, which drains the guest process's
own stdout/stderr and tears the instance down when the process exits.
"""

import _thread
import contextlib
import logging
import threading
import traceback
import warnings
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from guest_supervisor.instance import Instance

logger = logging.getLogger(__name__)


class ExitWatcher:
    """Background watcher that blocks on process output until the process exits."""

    def __init__(self, instance: "Instance", on_exit: Callable[[int], None]) -> None:
        self._instance = instance
        self._on_exit = on_exit
        self._thread: threading.Thread | None = None
        self.returncode: int | None = None

    def start(self) -> None:
        name = f"GuestExitWatcher-{self._instance.instance_id}"
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _drain_output(self) -> None:
        inst = self._instance
        stream = inst.proc.stdout
        if stream is None:
            return
        try:
            for raw in stream:
                line = raw.rstrip()
                if not line:
                    continue
                inst.output.append(line)
                logger.debug("[guest %d] %s", inst.instance_id, line)
        except (ValueError, OSError) as e:
            warnings.warn(f"Exit watcher for instance {inst.instance_id} read error: {e}", stacklevel=2)
        finally:
            with contextlib.suppress(ValueError, OSError):
                stream.close()

    def _run(self) -> None:
        inst = self._instance
        try:
            self._drain_output()
            self.returncode = inst.proc.wait()
        except KeyboardInterrupt:
            logger.warning("Thread %s caught KeyboardInterrupt", threading.current_thread().name)
            traceback.print_exc()
            _thread.interrupt_main()
            raise
        if inst.output:
            logger.info("Guest %d output:\n%s", inst.instance_id, "\n".join(inst.output))
        logger.info("Guest process %d for instance %d exited with %s", inst.pid, inst.instance_id, self.returncode)
        self._on_exit(self.returncode)

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread
