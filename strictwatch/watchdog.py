"""
watchdog.py - ViolationWatchdog, the policy engine.

GUARANTEES:
1. observe() never raises and takes no lock; the Policy is immutable shared state
2. Allowed is the side-effect-free fast path
3. A violation is reported to the sink at most once per observation
4. terminate-process is always the last action performed
5. Operations observed while the same thread is already reporting are exempt,
   across every watchdog in the process
6. Buffering sinks are closed (flushed) before terminate-process runs
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from . import actions, errors
from .categories import Action, ViolationCategory
from .host import HostCapabilities
from .policy import Policy
from .sinks import NullSink, Sink
from .violation import ALLOWED, Decision, Operation, Violation, create_violation

logger = logging.getLogger(__name__)

# Shared by every watchdog in the process: while a thread is responding to
# one violation, nothing it does may raise another, whichever watchdog sees it.
_reporting = threading.local()

SINK_FLUSH_TIMEOUT = 2.0


class ViolationWatchdog:
    """
    Classifies operations against a Policy and reports violations.

    The host holds one instance and calls observe() at each operation site.
    Actions the host cannot perform are dropped at construction with a
    single warning notice; construction itself never fails for that reason.
    """

    def __init__(
        self,
        policy: Policy,
        sink: Sink | None = None,
        host: HostCapabilities | None = None,
        terminator: Callable[[Violation], None] | None = None,
        flasher: Callable[[Violation], None] | None = None,
        on_notice: Callable[[errors.Notice], None] | None = None,
    ) -> None:
        self.requested_policy = policy
        self.sink = sink if sink is not None else NullSink()
        self.host = host if host is not None else HostCapabilities.detect()
        self._terminator = terminator or actions.terminate_process
        self._flasher = flasher or actions.flash_terminal
        self.notices: tuple[errors.Notice, ...] = ()

        try:
            self._validate_actions(policy)
            self.policy = policy
        except errors.InvalidConfiguration as e:
            supported, _ = self.host.partition(policy.actions)
            self.policy = policy.with_actions(supported)
            self.notices = (e.notice,)
            logger.warning("%s (host: %s)", e, self.host.describe())
            if on_notice is not None:
                try:
                    on_notice(e.notice)
                except Exception:
                    logger.exception("on_notice callback failed")

        self._policy_hash = self.policy.policy_hash
        logger.info(
            "Watchdog enabled: policy=%s categories=%d actions=%s",
            self.policy.name,
            len(self.policy.categories),
            ",".join(sorted(a.value for a in self.policy.actions)) or "none",
        )

    def _validate_actions(self, policy: Policy) -> None:
        _, unsupported = self.host.partition(policy.actions)
        if unsupported:
            raise errors.unsupported_actions(unsupported, reason=self.host.describe())

    @property
    def effective_actions(self) -> frozenset[Action]:
        return self.policy.actions

    def observe(self, operation: Operation) -> Decision:
        """
        Classify an operation. Returns ALLOWED or Decision.violation(category).

        Never raises: unknown categories and malformed operations are Allowed.
        """
        if getattr(_reporting, "active", False):
            return ALLOWED

        try:
            category = operation.category
            if not isinstance(category, ViolationCategory):
                category = ViolationCategory(category)
            context_id = str(operation.context_id)
        except (AttributeError, ValueError, TypeError):
            logger.debug("Ignoring unclassifiable operation: %r", operation)
            return ALLOWED

        if not self.policy.covers(category, context_id):
            return ALLOWED

        if category is not operation.category or context_id is not operation.context_id:
            operation = Operation(category, context_id, getattr(operation, "description", "") or "")

        _reporting.active = True
        try:
            violation = create_violation(operation, self.policy.name, self._policy_hash)
            self._respond(violation)
        finally:
            _reporting.active = False

        return Decision.violation(category, violation)

    def __call__(self, operation: Operation) -> Decision:
        return self.observe(operation)

    def _respond(self, violation: Violation) -> None:
        enabled = self.policy.actions

        for action in actions.ORDERED_ACTIONS:
            if action in enabled:
                self._perform(action, violation)

        self._deliver(violation)

        if Action.TERMINATE_PROCESS in enabled:
            self._flush_sink()
            self._perform(Action.TERMINATE_PROCESS, violation)

    def _perform(self, action: Action, violation: Violation) -> None:
        try:
            if action is Action.LOG:
                actions.log_violation(violation)
            elif action is Action.VISUAL_ALERT:
                self._flasher(violation)
            elif action is Action.TERMINATE_PROCESS:
                self._terminator(violation)
        except Exception:
            logger.exception("Action %s failed for violation %s", action.value, violation.violation_id)

    def _deliver(self, violation: Violation) -> None:
        try:
            self.sink.report(violation)
        except Exception as e:
            failure = errors.sink_delivery_failure(self.sink, e)
            logger.warning("%s", failure, exc_info=True)

    def _flush_sink(self) -> None:
        """Give a buffering sink the chance to deliver before the process ends."""
        close = getattr(self.sink, "close", None)
        if not callable(close):
            return
        try:
            close(timeout=SINK_FLUSH_TIMEOUT)
        except Exception:
            logger.warning("Could not flush %s before terminating", type(self.sink).__name__, exc_info=True)
