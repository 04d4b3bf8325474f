"""
strictwatch/host.py - What the current host can do in response to a violation
"""
import sys
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Tuple

from .categories import Action


@dataclass(frozen=True)
class HostCapabilities:
    interactive: bool = False      # Has a terminal a visual alert can reach
    can_terminate: bool = True

    @classmethod
    def detect(cls) -> "HostCapabilities":
        stream = sys.stderr
        interactive = bool(stream is not None and hasattr(stream, "isatty") and stream.isatty())
        return cls(interactive=interactive, can_terminate=True)

    def supports(self, action: Action) -> bool:
        if action is Action.VISUAL_ALERT:
            return self.interactive
        if action is Action.TERMINATE_PROCESS:
            return self.can_terminate
        return True

    def partition(self, actions: Iterable[Action]) -> Tuple[FrozenSet[Action], FrozenSet[Action]]:
        """Split actions into (supported, unsupported)."""
        actions = frozenset(actions)
        supported = frozenset(a for a in actions if self.supports(a))
        return supported, actions - supported

    def describe(self) -> str:
        return f"interactive={self.interactive} can_terminate={self.can_terminate}"
