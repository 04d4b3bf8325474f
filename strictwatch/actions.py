"""
strictwatch/actions.py - Response actions performed when a violation is found

The watchdog runs them in a fixed order: log, visual alert, sink
delivery, and terminate-process strictly last.
"""

from __future__ import annotations

import logging
import os
import sys
import threading

from .categories import Action
from .violation import Violation

violation_logger = logging.getLogger("strictwatch.violations")

TERMINATE_EXIT_CODE = 70  # EX_SOFTWARE
FLASH_SECONDS = 0.05

# Non-terminate actions in execution order
ORDERED_ACTIONS = (Action.LOG, Action.VISUAL_ALERT)


def log_violation(violation: Violation) -> None:
    """Write one structured log line for the violation."""
    violation_logger.warning(
        "Policy violation: category=%s context=%s operation=%s policy=%s",
        violation.category.value,
        violation.context_id,
        violation.operation,
        violation.policy_name,
        extra={"violation": violation.to_dict()},
    )


def flash_terminal(violation: Violation, stream=None) -> threading.Timer:
    """
    Transient visual indicator: reverse video on the terminal for FLASH_SECONDS.

    Only the "on" write happens on the observing thread; a timer thread
    restores the terminal.
    """
    stream = stream or sys.stderr
    stream.write("\x1b[?5h")
    stream.flush()
    timer = threading.Timer(FLASH_SECONDS, _end_flash, args=(stream,))
    timer.daemon = True
    timer.start()
    return timer


def _end_flash(stream) -> None:
    try:
        stream.write("\x1b[?5l")
        stream.flush()
    except (OSError, ValueError):
        pass  # Stream closed while the flash was showing


def terminate_process(violation: Violation) -> None:
    """Flush logging and end the process immediately."""
    violation_logger.critical(
        "Terminating process after %s violation (id=%s)",
        violation.category.value,
        violation.violation_id,
    )
    logging.shutdown()
    os._exit(TERMINATE_EXIT_CODE)


class RecordingActions:
    """
    Stand-in flasher/terminator that records instead of acting.

    Used by `strictwatch simulate` so a policy can be exercised without
    flashing the terminal or killing the CLI.
    """

    def __init__(self) -> None:
        self.performed: list[tuple[str, str]] = []

    def flasher(self, violation: Violation) -> None:
        self.performed.append((Action.VISUAL_ALERT.value, violation.violation_id))

    def terminator(self, violation: Violation) -> None:
        self.performed.append((Action.TERMINATE_PROCESS.value, violation.violation_id))

