"""Regular expressions for recognizing guest console output."""

import re

# A kernel log line, e.g. "[    1.234567] eth0: link up"
PRINTK_TIMESTAMP = re.compile(r"\[ *[0-9]*\.[0-9]*\] ")

# Printed by the guest's init once userspace is up
INIT_RUNNING = re.compile(r"^\[cs194-24\] init running")

BOOT_PANIC = re.compile(r"^\[ *[0-9]*\.[0-9]*\] Kernel panic - not syncing")
KERNEL_PANIC = re.compile(r"^\[.*\] Kernel panic")
POWER_DOWN = re.compile(r"\[ *[0-9]*\.[0-9]*\] Power down\.")

PING_SUMMARY = re.compile(r"^.*packets transmitted.*$")
PING_NO_LOSS = re.compile(r"^.*packets transmitted.*, 0%.packet loss")
