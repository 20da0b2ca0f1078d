"""Status conditions for claims.

The condition list is the only stored representation; the legacy single
``condition`` field of a claim status is derived from it.
"""

from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional

from pydantic import Field, RootModel

from quotapool.api.meta import ApiModel, utcnow


ASSIGNED_CONDITION = "Assigned"
BOUND_CONDITION = "Bound"
EXHAUSTED_CONDITION = "Exhausted"

SUCCEEDED_REASON = "Succeeded"
FAILED_REASON = "Failed"
POOL_EXHAUSTED_REASON = "PoolExhausted"
QUEUE_EXHAUSTED_REASON = "QueueExhausted"
DISASSOCIATED_REASON = "Disassociated"

# Tiebreak for the legacy projection when transition times are equal
_LEGACY_PRIORITY = {
    ASSIGNED_CONDITION: 0,
    EXHAUSTED_CONDITION: 1,
    BOUND_CONDITION: 2,
}


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(ApiModel):
    """A single observation about an object's state."""
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    observed_generation: int = Field(default=0, alias="observedGeneration")
    last_transition_time: datetime = Field(default_factory=utcnow, alias="lastTransitionTime")

    def differs_from(self, other: "Condition") -> bool:
        return (
            self.type != other.type
            or self.status != other.status
            or self.reason != other.reason
            or self.message != other.message
        )

    def update(self, other: "Condition") -> bool:
        """Copy ``other`` into this condition.

        Returns whether anything relevant changed. The transition time only
        moves when the status flips.
        """
        if not self.differs_from(other):
            return False

        if self.status != other.status:
            self.last_transition_time = other.last_transition_time

        self.status = other.status
        self.reason = other.reason
        self.message = other.message
        self.observed_generation = other.observed_generation
        return True


class ConditionList(RootModel[List[Condition]]):
    """Ordered list of conditions keyed by type."""

    root: List[Condition] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Condition]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> Condition:
        return self.root[index]

    def get_by_type(self, condition_type: str) -> Optional[Condition]:
        for condition in self.root:
            if condition.type == condition_type:
                return condition
        return None

    def update_by_type(self, condition: Condition) -> bool:
        """Update the condition of the same type in place, or append it."""
        current = self.get_by_type(condition.type)
        if current is None:
            self.root.append(condition.model_copy())
            return True
        return current.update(condition)

    def is_true(self, condition_type: str) -> bool:
        condition = self.get_by_type(condition_type)
        return condition is not None and condition.status == ConditionStatus.TRUE

    def latest(self) -> Optional[Condition]:
        """The most recently transitioned condition."""
        if not self.root:
            return None
        return max(
            self.root,
            key=lambda c: (c.last_transition_time, _LEGACY_PRIORITY.get(c.type, -1)),
        )


def new_condition(
    condition_type: str,
    status: ConditionStatus,
    reason: str,
    message: str = "",
    generation: int = 0
) -> Condition:
    return Condition(
        type=condition_type,
        status=status,
        reason=reason,
        message=message,
        observed_generation=generation,
    )
