"""Operator status conditions and the status object that holds them."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Condition:
    """One observation about the state of the operator."""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = field(default=None, compare=False)


@dataclass
class OperatorStatus:
    """The conditions reported by the operator, keyed by condition type."""

    conditions: list[Condition] = field(default_factory=list)
    clock: Callable[[], datetime] = field(default=_utc_now, repr=False, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def set_condition(self, condition: Condition) -> None:
        """Add or update a condition; the transition time moves only when the status changes."""
        with self._lock:
            for index, existing in enumerate(self.conditions):
                if existing.type != condition.type:
                    continue
                if existing.status == condition.status and existing.last_transition_time:
                    when = existing.last_transition_time
                else:
                    when = self.clock()
                self.conditions[index] = replace(condition, last_transition_time=when)
                return
            self.conditions.append(replace(condition, last_transition_time=self.clock()))

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        """Return the condition of the given type, or None when it is not set."""
        with self._lock:
            return next((c for c in self.conditions if c.type == condition_type), None)

    def is_condition_true(self, condition_type: str) -> bool:
        """True when the condition is set and its status is True."""
        condition = self.get_condition(condition_type)
        return condition is not None and condition.status == CONDITION_TRUE