"""
policy.py - Immutable watchdog policy.

A Policy is built once at startup and never mutated. Every Violation it
produces carries the policy name and policy_hash, where
policy_hash = SHA-256(canonical JSON of the policy).
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable

import yaml

from . import errors
from .categories import (
    ALL_CATEGORIES,
    THREAD_CATEGORIES,
    VM_CATEGORIES,
    Action,
    Scope,
    ViolationCategory,
)

logger = logging.getLogger(__name__)

_CATEGORY_ALIASES = {
    "all": ALL_CATEGORIES,
    Scope.THREAD.value: THREAD_CATEGORIES,
    Scope.VM.value: VM_CATEGORIES,
}


@dataclass(frozen=True)
class Policy:
    """
    Enabled detection categories plus enabled response actions.

    sensitive_contexts=None means every execution context is sensitive.
    Thread-scoped categories only count on a sensitive context; VM-scoped
    categories count everywhere.
    """

    name: str = "custom"
    categories: frozenset[ViolationCategory] = field(default_factory=frozenset)
    actions: frozenset[Action] = field(default_factory=frozenset)
    sensitive_contexts: frozenset[str] | None = None

    def __post_init__(self) -> None:
        # Normalise so callers may pass any iterable of enums or their values
        object.__setattr__(self, "categories", frozenset(_parse_categories(self.categories)))
        object.__setattr__(self, "actions", frozenset(_parse_actions(self.actions)))
        if self.sensitive_contexts is not None:
            object.__setattr__(self, "sensitive_contexts", frozenset(self.sensitive_contexts))

    @classmethod
    def empty(cls) -> Policy:
        return cls(name="empty")

    @classmethod
    def detect_all(cls, actions: Iterable[Action] = (Action.LOG,)) -> Policy:
        return cls(name="detect-all", categories=ALL_CATEGORIES, actions=frozenset(actions))

    @classmethod
    def detect_thread(cls, actions: Iterable[Action] = (Action.LOG,), sensitive_contexts=None) -> Policy:
        return cls(
            name="thread-detect-all",
            categories=THREAD_CATEGORIES,
            actions=frozenset(actions),
            sensitive_contexts=sensitive_contexts,
        )

    @classmethod
    def detect_vm(cls, actions: Iterable[Action] = (Action.LOG,)) -> Policy:
        return cls(name="vm-detect-all", categories=VM_CATEGORIES, actions=frozenset(actions))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Policy:
        """
        Build a policy from a plain mapping (the YAML policy file layout).

        Raises:
            InvalidConfiguration: unknown category/action or wrong shapes.
        """
        if not isinstance(data, dict):
            raise errors.InvalidConfiguration(errors.Notice(
                code=errors.ErrorCode.INVALID_CONFIGURATION,
                message="Policy must be a mapping",
            ))

        raw_categories = data.get("categories", [])
        if isinstance(raw_categories, str):
            alias = _CATEGORY_ALIASES.get(raw_categories.lower())
            if alias is None:
                raise errors.unknown_category(raw_categories)
            categories = alias
        else:
            categories = frozenset(_parse_categories(raw_categories or []))

        contexts = data.get("sensitive_contexts")
        if contexts is not None and not isinstance(contexts, (list, tuple)):
            raise errors.InvalidConfiguration(errors.Notice(
                code=errors.ErrorCode.INVALID_CONFIGURATION,
                message="sensitive_contexts must be a list of context names",
                details={"value": repr(contexts)},
            ))

        return cls(
            name=str(data.get("name", "custom")),
            categories=categories,
            actions=frozenset(_parse_actions(data.get("actions") or [])),
            sensitive_contexts=frozenset(str(c) for c in contexts) if contexts is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "categories": sorted(c.value for c in self.categories),
            "actions": sorted(a.value for a in self.actions),
            "sensitive_contexts": (
                sorted(self.sensitive_contexts) if self.sensitive_contexts is not None else None
            ),
        }

    @property
    def policy_hash(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @property
    def is_empty(self) -> bool:
        return not self.categories

    def with_actions(self, actions: Iterable[Action]) -> Policy:
        return replace(self, actions=frozenset(actions))

    def is_sensitive(self, context_id: str) -> bool:
        return self.sensitive_contexts is None or context_id in self.sensitive_contexts

    def covers(self, category: ViolationCategory, context_id: str) -> bool:
        """True if observing `category` on `context_id` is a violation under this policy."""
        if category not in self.categories:
            return False
        if category.scope is Scope.THREAD:
            return self.is_sensitive(context_id)
        return True


def load_policy(path: str | Path) -> Policy:
    """Load a policy from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise errors.policy_file_invalid(str(path), "file not found")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise errors.policy_file_invalid(str(path), f"YAML parse error: {e}") from e

    if not isinstance(data, dict):
        raise errors.policy_file_invalid(str(path), "not a YAML mapping")

    policy = Policy.from_dict(data)
    logger.info(
        "Policy loaded from %s: name=%s categories=%d actions=%s",
        path,
        policy.name,
        len(policy.categories),
        ",".join(sorted(a.value for a in policy.actions)) or "none",
    )
    return policy


def _parse_categories(values: Iterable[Any]):
    for value in values:
        if isinstance(value, ViolationCategory):
            yield value
            continue
        try:
            yield ViolationCategory(value)
        except ValueError:
            raise errors.unknown_category(value) from None


def _parse_actions(values: Iterable[Any]):
    for value in values:
        if isinstance(value, Action):
            yield value
            continue
        try:
            yield Action(value)
        except ValueError:
            raise errors.unknown_action(value) from None
