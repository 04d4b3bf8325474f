"""
examples/embed_demo.py - Wire the watchdog into a host at startup
"""

import logging
import threading

from strictwatch import MemorySink, Operation, ViolationCategory, strict_mode_defaults
from strictwatch.config import configure_logging

logger = logging.getLogger("demo")


def load_settings(watchdog):
    # The host's instrumentation calls observe() right before the real I/O
    watchdog.observe(Operation.here(ViolationCategory.DISK_READ, "read settings.json"))


def main():
    configure_logging("INFO")

    logger.info("Enabling strict mode for debug build")
    sink = MemorySink()
    watchdog = strict_mode_defaults(sink=sink, sensitive_contexts=["MainThread"])

    load_settings(watchdog)  # Main thread: violation

    worker = threading.Thread(target=load_settings, args=(watchdog,), name="io-worker")
    worker.start()
    worker.join()  # Worker thread: allowed

    watchdog.observe(Operation.here(ViolationCategory.RESOURCE_LEAK, "socket never closed"))

    for violation in sink.flush():
        print(f"{violation.category.value:<16} {violation.context_id:<12} {violation.operation}")


if __name__ == "__main__":
    main()
