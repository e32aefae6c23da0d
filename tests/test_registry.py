"""Tests for the InstanceRegistry and error formatting."""

import unittest
import warnings

from helpers import spawn_process

from guest_supervisor import InstanceDead, LaunchTimeout, OutputMismatch, UnknownInstance
from guest_supervisor.instance import Instance
from guest_supervisor.registry import InstanceRegistry


class TestInstanceRegistry(unittest.TestCase):
    def setUp(self):
        self.proc = spawn_process()
        self.registry = InstanceRegistry()

    def tearDown(self):
        self.proc.kill()
        self.proc.wait(timeout=5)

    def test_get_returns_registered_instance(self):
        instance = Instance(0, self.proc)
        self.registry.add(instance)
        self.assertIs(self.registry.get(0), instance)
        self.assertIn(0, self.registry)
        self.assertEqual(self.registry.ids(), [0])

    def test_ids_cannot_be_reused(self):
        self.registry.add(Instance(0, self.proc))
        with self.assertRaises(ValueError):
            self.registry.add(Instance(0, self.proc))

    def test_unknown_id(self):
        with self.assertRaises(UnknownInstance):
            self.registry.get(3)
        with self.assertRaises(LookupError):
            self.registry.get(3)

    def test_reset_forgets_everything(self):
        self.registry.add(Instance(0, self.proc))
        self.registry.reset()
        self.assertNotIn(0, self.registry)
        self.registry.add(Instance(0, self.proc))

    def test_list_running_skips_killed(self):
        alive = Instance(0, self.proc)
        dead = Instance(1, self.proc)
        dead.running = False
        self.registry.add(alive)
        self.registry.add(dead)
        self.assertEqual(self.registry.list_running(), [alive])

    def test_dump_running_reports_last_line(self):
        instance = Instance(0, self.proc)
        instance.record_line("[    3.000000] stuck here")
        self.registry.add(instance)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.registry.dump_running()

        messages = "\n".join(str(w.message) for w in caught)
        self.assertIn("stuck here", messages)
        self.assertIn(f"pid={self.proc.pid}", messages)

    def test_dump_running_with_nothing_running(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.registry.dump_running()
        self.assertIn("NO RUNNING GUEST INSTANCES", str(caught[0].message))


class TestErrors(unittest.TestCase):
    def test_message_names_instance_and_last_line(self):
        error = InstanceDead(1, "instance is dead (watchdog timeout)", "[    9.0] hung")
        self.assertEqual(error.instance_id, 1)
        self.assertEqual(error.last_line, "[    9.0] hung")
        self.assertIn("instance 1", str(error))
        self.assertIn("hung", str(error))

    def test_error_families(self):
        self.assertTrue(issubclass(LaunchTimeout, TimeoutError))
        self.assertTrue(issubclass(OutputMismatch, AssertionError))


if __name__ == "__main__":
    unittest.main()
