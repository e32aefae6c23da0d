"""Tests for the per-instance liveness watchdog."""

import threading
import time
import unittest

from helpers import PipePeer, spawn_process, wait_until

from guest_supervisor import InstanceDead, ReadCancelled, Supervisor, SupervisorConfig
from guest_supervisor.instance import Instance
from guest_supervisor.watchdog import Watchdog


class TestWatchdog(unittest.TestCase):
    """Watchdog behaviour in isolation."""

    def setUp(self):
        self.proc = spawn_process()
        self.instance = Instance(0, self.proc)

    def tearDown(self):
        self.instance.stopped.set()
        self.proc.kill()
        self.proc.wait(timeout=5)

    def test_expires_without_output(self):
        fired = threading.Event()
        watchdog = Watchdog(self.instance, 0.1, on_expire=fired.set)
        watchdog.start()

        self.assertTrue(fired.wait(timeout=5))
        self.assertTrue(watchdog.expired)
        watchdog.thread.join(timeout=5)
        self.assertFalse(watchdog.thread.is_alive())

    def test_liveness_is_reset_each_window(self):
        fired = threading.Event()
        self.instance.record_line("booting")
        watchdog = Watchdog(self.instance, 0.2, on_expire=fired.set)
        watchdog.start()

        # The first window consumes the flag, the second one expires
        self.assertFalse(fired.wait(timeout=0.1))
        self.assertTrue(fired.wait(timeout=5))

    def test_stops_when_instance_stops(self):
        fired = threading.Event()
        watchdog = Watchdog(self.instance, 0.2, on_expire=fired.set)
        watchdog.start()

        self.instance.stopped.set()
        watchdog.thread.join(timeout=5)

        self.assertFalse(watchdog.thread.is_alive())
        self.assertFalse(fired.is_set())
        self.assertFalse(watchdog.expired)


class TestWatchdogKills(unittest.TestCase):
    """Watchdog wired into the Supervisor."""

    def setUp(self):
        self.supervisor = Supervisor(SupervisorConfig(watchdog_interval=0.3, cleanup_command=None))
        self.peer = PipePeer()
        self.proc = spawn_process()
        self.supervisor.adopt(0, self.proc, self.peer.pipes)

    def tearDown(self):
        self.supervisor.reset()
        self.proc.wait(timeout=5)
        self.peer.close()

    def test_silent_instance_is_killed(self):
        self.assertTrue(wait_until(lambda: not self.supervisor.is_running(0)))
        instance = self.supervisor.registry.get(0)
        self.assertEqual(instance.kill_reason, "watchdog timeout")
        with self.assertRaises(InstanceDead):
            self.supervisor.next_line(0)

    def test_blocked_read_is_cancelled_by_watchdog(self):
        start = time.monotonic()
        with self.assertRaises(ReadCancelled) as cm:
            self.supervisor.next_line(0)
        self.assertLess(time.monotonic() - start, 5.0)
        self.assertIn("watchdog timeout", str(cm.exception))

    def test_steady_output_keeps_instance_alive(self):
        stop = threading.Event()

        def _chatter():
            while not stop.is_set():
                self.peer.emit("[    1.000000] heartbeat")
                time.sleep(0.05)

        chatter = threading.Thread(target=_chatter, daemon=True)
        chatter.start()
        try:
            deadline = time.monotonic() + 1.2
            while time.monotonic() < deadline:
                self.supervisor.next_line(0)
            self.assertTrue(self.supervisor.is_running(0))
        finally:
            stop.set()
            chatter.join(timeout=5)


if __name__ == "__main__":
    unittest.main()
