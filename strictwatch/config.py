"""Environment-driven configuration for embedding the watchdog."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .host import HostCapabilities
from .policy import Policy, load_policy
from .presets import DETECT_ALL_LOG_POLICY, WatchdogSet, strict_mode_defaults
from .sinks import HttpSink, LoggingSink, MemorySink, NullSink
from .watchdog import ViolationWatchdog

logger = logging.getLogger(__name__)

PRESETS = ("strict-mode", "detect-all", "empty")
SINKS = ("none", "log", "memory", "http")


class WatchdogSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRICTWATCH_", env_file=".env", extra="ignore")

    ENABLED: bool = True

    # Policy: a YAML file wins over a preset
    POLICY_FILE: Optional[str] = None
    PRESET: str = "strict-mode"
    ACTIONS: Optional[List[str]] = None  # Overrides the preset's actions
    SENSITIVE_CONTEXTS: Optional[List[str]] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    # Sink
    # "log" duplicates the log action line
    SINK: str = "none"
    MEMORY_CAPACITY: int = 1000
    HTTP_URL: str = "http://localhost:8000"
    HTTP_PATH: str = "/api/v1/violations"
    API_KEY: Optional[str] = None
    MAX_RETRIES: int = 5
    RETRY_MIN_WAIT: float = 1.0
    RETRY_MAX_WAIT: float = 10.0
    BATCH_SIZE: int = 10


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_sink(settings: WatchdogSettings):
    kind = settings.SINK.lower()
    if kind == "none":
        return NullSink()
    if kind == "log":
        return LoggingSink()
    if kind == "memory":
        return MemorySink(capacity=settings.MEMORY_CAPACITY)
    if kind == "http":
        return HttpSink(
            base_url=settings.HTTP_URL,
            api_key=settings.API_KEY,
            path=settings.HTTP_PATH,
            max_retries=settings.MAX_RETRIES,
            retry_min_wait=settings.RETRY_MIN_WAIT,
            retry_max_wait=settings.RETRY_MAX_WAIT,
            batch_size=settings.BATCH_SIZE,
        )
    raise ValueError(f"Unknown sink {settings.SINK!r}, expected one of {SINKS}")


def build_policy(settings: WatchdogSettings) -> Policy:
    if settings.POLICY_FILE:
        policy = load_policy(settings.POLICY_FILE)
    elif settings.PRESET == "detect-all":
        policy = DETECT_ALL_LOG_POLICY
    elif settings.PRESET == "empty":
        policy = Policy.empty()
    else:
        raise ValueError(
            f"Preset {settings.PRESET!r} has no single policy, expected one of {PRESETS[1:]}"
        )

    if settings.ACTIONS is not None:
        policy = policy.with_actions(settings.ACTIONS)
    if settings.SENSITIVE_CONTEXTS is not None:
        policy = Policy(
            name=policy.name,
            categories=policy.categories,
            actions=policy.actions,
            sensitive_contexts=frozenset(settings.SENSITIVE_CONTEXTS),
        )
    return policy


def build_watchdog(
    settings: WatchdogSettings | None = None,
    host: HostCapabilities | None = None,
    **watchdog_kwargs,
) -> ViolationWatchdog | WatchdogSet:
    """
    Create the watchdog described by settings. Called once at startup.

    With ENABLED=false the result still answers observe(), but with an
    empty policy so nothing is ever reported.
    """
    settings = settings or WatchdogSettings()

    if not settings.ENABLED:
        logger.info("Watchdog disabled by configuration")
        return ViolationWatchdog(Policy.empty(), sink=NullSink(), host=host, **watchdog_kwargs)

    sink = build_sink(settings)

    if settings.PRESET == "strict-mode" and not settings.POLICY_FILE:
        if settings.ACTIONS is None:
            return strict_mode_defaults(
                sink=sink,
                host=host,
                sensitive_contexts=settings.SENSITIVE_CONTEXTS,
                **watchdog_kwargs,
            )
        thread_policy = Policy.detect_thread(
            actions=settings.ACTIONS, sensitive_contexts=settings.SENSITIVE_CONTEXTS
        )
        vm_policy = Policy.detect_vm(actions=settings.ACTIONS)
        return WatchdogSet(
            thread=ViolationWatchdog(thread_policy, sink=sink, host=host, **watchdog_kwargs),
            vm=ViolationWatchdog(vm_policy, sink=sink, host=host, **watchdog_kwargs),
        )

    return ViolationWatchdog(build_policy(settings), sink=sink, host=host, **watchdog_kwargs)
