"""Tests for the guest-level session helpers, against the fake guest."""

import sys
import tempfile
import unittest
from pathlib import Path

from helpers import FAKE_GUEST

from guest_supervisor import (
    DEFAULT_GUEST_IPS,
    GuestSession,
    OutputMismatch,
    PipeLayout,
    Supervisor,
    SupervisorConfig,
    UnexpectedTermination,
)


class TestGuestSession(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.supervisor = Supervisor(
            SupervisorConfig(
                launcher=[sys.executable, str(FAKE_GUEST)],
                layout=PipeLayout(directory=Path(self._tmp.name)),
                watchdog_interval=30.0,
                pipe_poll_interval=0.05,
                pipe_wait_timeout=10.0,
                cleanup_command=None,
            )
        )
        self.session = GuestSession(self.supervisor, 0, ip=DEFAULT_GUEST_IPS[0])

    def tearDown(self):
        self.supervisor.cleanup_shared_resources()
        for proc in self.supervisor.launcher.spawned:
            proc.wait(timeout=10)
        self._tmp.cleanup()

    def test_boot_configures_address(self):
        self.session.boot()
        self.assertTrue(self.supervisor.is_running(0))
        self.assertEqual(self.supervisor.last_line(0), "[cs194-24] init running")

    def test_panic_during_boot(self):
        with self.assertRaises(UnexpectedTermination) as cm:
            self.session.boot("--panic")
        self.assertIn("Kernel panic", cm.exception.last_line)

    def test_ping_without_loss(self):
        self.session.boot()
        summary = self.session.ping(DEFAULT_GUEST_IPS[1], 3)
        self.assertIn("3 packets transmitted", summary)

    def test_ping_with_loss_fails(self):
        self.session.boot()
        with self.assertRaises(OutputMismatch):
            self.session.ping("10.0.2.99", 3)

    def test_wait_for_power_down(self):
        self.session.boot()
        self.session.execute("poweroff", settle=0)
        self.session.wait_for_power_down()
        self.assertIn("Power down.", self.supervisor.last_line(0))

    def test_expect_absent_passes_until_stop_marker(self):
        self.session.boot()
        for word in ("alpha", "beta", "DONE"):
            self.session.execute(f"echo {word}", settle=0)
        self.session.expect_absent("gamma", "DONE")

    def test_expect_absent_fails_when_text_appears(self):
        self.session.boot()
        for word in ("alpha", "beta", "DONE"):
            self.session.execute(f"echo {word}", settle=0)
        with self.assertRaises(OutputMismatch) as cm:
            self.session.expect_absent("beta", "DONE")
        self.assertEqual(cm.exception.last_line, "beta")

    def test_shutdown_kills_instance(self):
        self.session.boot()
        self.session.shutdown()
        self.assertFalse(self.supervisor.is_running(0))

    def test_set_ip_requires_address(self):
        session = GuestSession(self.supervisor, 0)
        with self.assertRaises(ValueError):
            session.set_ip()


if __name__ == "__main__":
    unittest.main()
