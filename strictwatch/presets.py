"""
strictwatch/presets.py - Ready-made policies and the two-detector WatchdogSet

The debug configuration pairs a thread detector (every thread category,
log + visual alert) with a VM detector (every VM category, log only).
"""
import logging
from typing import Optional

from .categories import Action, Scope, ViolationCategory
from .host import HostCapabilities
from .policy import Policy
from .sinks import Sink
from .violation import ALLOWED, Decision, Operation
from .watchdog import ViolationWatchdog

logger = logging.getLogger(__name__)

THREAD_DEBUG_POLICY = Policy.detect_thread(actions=(Action.LOG, Action.VISUAL_ALERT))
VM_DEBUG_POLICY = Policy.detect_vm(actions=(Action.LOG,))
DETECT_ALL_LOG_POLICY = Policy.detect_all(actions=(Action.LOG,))


class WatchdogSet:
    """Routes each operation to the watchdog that owns its category's scope."""

    def __init__(self, thread: ViolationWatchdog, vm: ViolationWatchdog):
        self.thread = thread
        self.vm = vm

    def observe(self, operation: Operation) -> Decision:
        try:
            category = ViolationCategory(operation.category)
        except (AttributeError, ValueError, TypeError):
            return ALLOWED
        watchdog = self.thread if category.scope is Scope.THREAD else self.vm
        return watchdog.observe(operation)

    __call__ = observe

    @property
    def notices(self):
        return self.thread.notices + self.vm.notices


def strict_mode_defaults(
    sink: Optional[Sink] = None,
    host: Optional[HostCapabilities] = None,
    sensitive_contexts=None,
    **watchdog_kwargs,
) -> WatchdogSet:
    """
    Build the debug-build configuration: detect everything, log it, and
    flash for thread violations where the host is interactive.
    """
    host = host or HostCapabilities.detect()
    thread_policy = THREAD_DEBUG_POLICY
    if sensitive_contexts is not None:
        thread_policy = Policy.detect_thread(
            actions=THREAD_DEBUG_POLICY.actions, sensitive_contexts=sensitive_contexts
        )
    logger.debug("Enabling strict mode defaults (host: %s)", host.describe())
    watchdogs = WatchdogSet(
        thread=ViolationWatchdog(thread_policy, sink=sink, host=host, **watchdog_kwargs),
        vm=ViolationWatchdog(VM_DEBUG_POLICY, sink=sink, host=host, **watchdog_kwargs),
    )
    logger.info("Strict mode enabled: thread violations log%s, VM violations log",
                " and flash" if Action.VISUAL_ALERT in watchdogs.thread.policy.actions else "")
    return watchdogs
