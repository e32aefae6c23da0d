"""Read operation module.

This module contains the ReadOperation class, a single cancellable line read
that runs on its own thread so the caller can wait on it without holding the
instance lock.
"""

import _thread
import logging
import threading
import traceback
import warnings
from collections.abc import Callable

from guest_supervisor.pipes import LineReader

logger = logging.getLogger(__name__)


class ReadOperation:
    """Reads exactly one line from a pipe, unless cancelled first.

    On success the line is forwarded to ``on_line``. Cancellation is
    cooperative: the reader polls the pipe and checks the cancel event between
    polls, so the thread always exits on its own.
    """

    def __init__(
        self,
        reader: LineReader,
        on_line: Callable[[str], None],
        name: str = "GuestRead",
        poll_interval: float = 0.1,
    ) -> None:
        self._reader = reader
        self._on_line = on_line
        self._poll_interval = poll_interval
        self._cancel = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._exit_lock = threading.Lock()
        self._finished = False
        self._close_on_exit = False

    @property
    def reader(self) -> LineReader:
        return self._reader

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancel.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the read to finish. Returns True once the thread has exited."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def close_reader_when_done(self) -> None:
        """Close the reader now if the read has finished, else when it does.

        Used when a cancelled read outlives its join timeout: the descriptor
        must stay open while the thread may still select or read on it.
        """
        with self._exit_lock:
            if not self._finished:
                self._close_on_exit = True
                return
        self._reader.close()

    def _handle_io_error(self, e: ValueError | OSError) -> None:
        # Expected when the pipe is torn down under a cancelled read
        if self._cancel.is_set() or self._reader.closed:
            logger.debug("Read on %s ended by teardown: %s", self._reader.name, e)
        else:
            warnings.warn(f"Read on {self._reader.name} failed: {e}", stacklevel=2)

    def _run(self) -> None:
        try:
            self._read()
        finally:
            with self._exit_lock:
                self._finished = True
                close = self._close_on_exit
            if close:
                logger.debug("Closing %s after abandoned read", self._reader.name)
                self._reader.close()

    def _read(self) -> None:
        try:
            line = self._reader.readline(self._cancel, self._poll_interval)
        except KeyboardInterrupt:
            thread_name = threading.current_thread().name
            logger.warning("Thread %s caught KeyboardInterrupt", thread_name)
            traceback.print_exc()
            _thread.interrupt_main()
            raise
        except (ValueError, OSError) as e:
            self._handle_io_error(e)
            return

        if line is not None:
            self._on_line(line)
