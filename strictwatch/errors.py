"""
strictwatch/errors.py - Error Taxonomy

Errors are contracts, not strings. Nothing in this module is ever raised
out of ViolationWatchdog.observe().
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # Configuration (raised by policy loaders, degraded by the watchdog)
    INVALID_CONFIGURATION = "WATCHDOG_INVALID_CONFIGURATION"
    UNSUPPORTED_ACTION = "WATCHDOG_UNSUPPORTED_ACTION"
    UNKNOWN_CATEGORY = "WATCHDOG_UNKNOWN_CATEGORY"
    UNKNOWN_ACTION = "WATCHDOG_UNKNOWN_ACTION"
    POLICY_FILE_INVALID = "WATCHDOG_POLICY_FILE_INVALID"

    # Delivery (always swallowed)
    SINK_DELIVERY_FAILURE = "WATCHDOG_SINK_DELIVERY_FAILURE"


@dataclass(frozen=True)
class Notice:
    """Immutable, machine-readable description of a configuration or delivery problem."""
    code: ErrorCode
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details or {},
        }


class WatchdogError(Exception):
    """Base exception. Carries a Notice payload."""
    def __init__(self, notice: Notice):
        self.notice = notice
        super().__init__(notice.message)

    @property
    def code(self) -> ErrorCode:
        return self.notice.code


class InvalidConfiguration(WatchdogError):
    """Policy input the host cannot honour, or that does not parse."""


class SinkDeliveryFailure(WatchdogError):
    """A sink could not deliver a violation. Best-effort: logged, never propagated."""


# Factories so every call site builds the same shape
def unsupported_actions(actions, reason: str) -> InvalidConfiguration:
    names = sorted(a.value for a in actions)
    return InvalidConfiguration(Notice(
        code=ErrorCode.UNSUPPORTED_ACTION,
        message=f"Actions not supported on this host, dropped: {', '.join(names)}",
        details={"dropped_actions": names, "reason": reason},
    ))


def unknown_category(value: Any) -> InvalidConfiguration:
    return InvalidConfiguration(Notice(
        code=ErrorCode.UNKNOWN_CATEGORY,
        message=f"Unknown violation category: {value!r}",
        details={"value": str(value)},
    ))


def unknown_action(value: Any) -> InvalidConfiguration:
    return InvalidConfiguration(Notice(
        code=ErrorCode.UNKNOWN_ACTION,
        message=f"Unknown response action: {value!r}",
        details={"value": str(value)},
    ))


def policy_file_invalid(path: str, reason: str) -> InvalidConfiguration:
    return InvalidConfiguration(Notice(
        code=ErrorCode.POLICY_FILE_INVALID,
        message=f"Policy file {path} is invalid: {reason}",
        details={"path": str(path), "reason": reason},
    ))


def sink_delivery_failure(sink: Any, error: BaseException) -> SinkDeliveryFailure:
    return SinkDeliveryFailure(Notice(
        code=ErrorCode.SINK_DELIVERY_FAILURE,
        message=f"{type(sink).__name__} failed to deliver violation: {error}",
        details={"sink": type(sink).__name__, "error_class": type(error).__name__},
    ))
