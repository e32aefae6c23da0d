"""Command line interface for booting and cleaning up supervised guests."""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
from pathlib import Path

from guest_supervisor import __version__
from guest_supervisor.config import PipeLayout, SupervisorConfig
from guest_supervisor.errors import GuestSupervisorError
from guest_supervisor.session import GuestSession
from guest_supervisor.supervisor import Supervisor

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="guest-supervisor", description="Boot and supervise emulated guests.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--launcher", default="./boot_qemu", help="Launcher command, split like a shell would.")
    parser.add_argument("--pipe-dir", type=Path, default=Path("."), help="Directory the launcher creates FIFOs in.")
    parser.add_argument("--watchdog-interval", type=float, default=10.0, help="Seconds of silence before a kill.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log guest lines.")

    sub = parser.add_subparsers(dest="command")

    boot = sub.add_parser("boot", help="Boot a guest, run commands, then shut it down.")
    boot.add_argument("args", nargs="?", default="", help="Extra launcher arguments, as one string.")
    boot.add_argument("--id", type=int, default=0, help="Instance id (selects the pipe set).")
    boot.add_argument("--ip", help="Address to assign to eth0 after boot.")
    boot.add_argument("--exec", dest="commands", action="append", default=[], help="Command to run in the guest.")
    boot.add_argument("--power-down", action="store_true", help="Wait for the guest to power down by itself.")

    cleanup = sub.add_parser("cleanup", help="Remove leftover FIFOs and guest processes.")
    cleanup.add_argument("--ids", type=int, nargs="*", default=[0, 1], help="Instance ids whose FIFOs to remove.")
    cleanup.add_argument("--command", dest="cleanup_command", help="Cleanup command to run afterwards.")
    return parser


def _config_from_args(ns: argparse.Namespace) -> SupervisorConfig:
    config = SupervisorConfig(
        launcher=shlex.split(ns.launcher),
        layout=PipeLayout(directory=ns.pipe_dir),
        watchdog_interval=ns.watchdog_interval,
    )
    if getattr(ns, "cleanup_command", None):
        config.cleanup_command = shlex.split(ns.cleanup_command)
    return config


def _boot(supervisor: Supervisor, ns: argparse.Namespace) -> int:
    session = GuestSession(supervisor, ns.id, ns.ip)
    try:
        session.boot(ns.args)
        for command in ns.commands:
            session.execute(command)
        if ns.power_down:
            session.wait_for_power_down()
    except (GuestSupervisorError, OSError) as e:
        logger.error("%s", e)
        return 1
    finally:
        supervisor.kill(ns.id)
    return 0


def _cleanup(supervisor: Supervisor, ns: argparse.Namespace) -> int:
    # Nothing was started by this process, so remove the FIFOs by id directly
    logger.info("Removing FIFOs of instances %s", ns.ids)
    supervisor.remove_pipe_files(ns.ids)
    supervisor.cleanup_shared_resources()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    ns = parser.parse_args(argv)
    if ns.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    supervisor = Supervisor(_config_from_args(ns))
    if ns.command == "boot":
        return _boot(supervisor, ns)
    return _cleanup(supervisor, ns)


if __name__ == "__main__":
    sys.exit(main())
