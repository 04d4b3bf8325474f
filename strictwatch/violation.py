"""
strictwatch/violation.py - Operation, Violation and Decision records
"""
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .categories import ViolationCategory


@dataclass(frozen=True)
class Operation:
    """An attempted operation as reported by the host's instrumentation."""
    category: ViolationCategory
    context_id: str
    description: str = ""

    @classmethod
    def here(cls, category: ViolationCategory, description: str = "") -> "Operation":
        """Describe an operation running on the calling thread."""
        return cls(category=category, context_id=threading.current_thread().name, description=description)


@dataclass(frozen=True)
class Violation:
    """
    Immutable record of a disallowed operation.

    Created by the watchdog, handed to the sink once, never mutated.
    """
    violation_id: str
    category: ViolationCategory
    operation: str
    context_id: str
    timestamp_wall: str
    policy_name: str
    policy_hash: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["category"] = self.category.value
        return d


def create_violation(operation: Operation, policy_name: str, policy_hash: str) -> Violation:
    ts_wall = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return Violation(
        violation_id=str(uuid.uuid4()),
        category=operation.category,
        operation=operation.description or operation.category.value,
        context_id=operation.context_id,
        timestamp_wall=ts_wall,
        policy_name=policy_name,
        policy_hash=policy_hash,
    )


class DecisionKind(str, Enum):
    ALLOWED = "ALLOWED"
    VIOLATION = "VIOLATION"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of observe(): Allowed, or Violation(category).

    The attached record is excluded from equality, so
    Decision.violation(cat) == observe(op) holds for any matching op.
    """
    kind: DecisionKind
    category: Optional[ViolationCategory] = None
    record: Optional[Violation] = field(default=None, compare=False, repr=False)

    @classmethod
    def violation(cls, category: ViolationCategory, record: Optional[Violation] = None) -> "Decision":
        return cls(kind=DecisionKind.VIOLATION, category=category, record=record)

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOWED

    @property
    def is_violation(self) -> bool:
        return self.kind is DecisionKind.VIOLATION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.kind.value,
            "category": self.category.value if self.category else None,
            "violation": self.record.to_dict() if self.record else None,
        }


ALLOWED = Decision(kind=DecisionKind.ALLOWED)
