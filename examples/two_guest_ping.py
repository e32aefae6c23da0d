#!/usr/bin/env python3
"""Two Guest Demo - Boots two networked guests, pings between them, shuts down."""

import logging
import sys

from guest_supervisor import DEFAULT_GUEST_IPS, GuestSession, GuestSupervisorError, Supervisor


def demo_two_guests():
    """Boot two guests on a shared network and ping from the first to the second."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    supervisor = Supervisor()
    first = GuestSession(supervisor, 0, ip=DEFAULT_GUEST_IPS[0])
    second = GuestSession(supervisor, 1, ip=DEFAULT_GUEST_IPS[1])

    try:
        first.boot("--net ne2k_pci,macaddr=0A:0A:0A:0A:0A:0A")
        second.boot("--net ne2k_pci,macaddr=0A:0A:0A:0A:0B:0B --node2")

        print(first.ping(DEFAULT_GUEST_IPS[1], 3))
    except GuestSupervisorError as e:
        print(f"Guest failure: {e}")
        supervisor.dump_running()
        return 1
    finally:
        first.shutdown()
        second.shutdown()
        supervisor.cleanup_shared_resources()

    print("Two guest demo completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(demo_two_guests())
