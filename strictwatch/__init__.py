"""
strictwatch - Runtime violation watchdog

Classifies blocking and leaking operations against an immutable policy
and reports violations to a sink.
"""
from .categories import Action, Scope, ViolationCategory
from .errors import ErrorCode, InvalidConfiguration, Notice, SinkDeliveryFailure, WatchdogError
from .host import HostCapabilities
from .policy import Policy, load_policy
from .presets import WatchdogSet, strict_mode_defaults
from .sinks import HttpSink, LoggingSink, MemorySink, NullSink, Sink
from .violation import ALLOWED, Decision, DecisionKind, Operation, Violation
from .watchdog import ViolationWatchdog

__version__ = "0.1.0"

__all__ = [
    "ALLOWED",
    "Action",
    "Decision",
    "DecisionKind",
    "ErrorCode",
    "HostCapabilities",
    "HttpSink",
    "InvalidConfiguration",
    "LoggingSink",
    "MemorySink",
    "Notice",
    "NullSink",
    "Operation",
    "Policy",
    "Scope",
    "Sink",
    "SinkDeliveryFailure",
    "Violation",
    "ViolationCategory",
    "ViolationWatchdog",
    "WatchdogError",
    "WatchdogSet",
    "load_policy",
    "strict_mode_defaults",
]
