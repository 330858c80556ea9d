"""Deployment result: per-object outcomes and the per-category summary."""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ObjectState(str, Enum):
    """States an object passes through while being ensured on the platform."""

    PLANNED = "PLANNED"
    CHECKING_EXISTENCE = "CHECKING_EXISTENCE"
    EXISTS = "EXISTS"
    NOT_FOUND = "NOT_FOUND"
    CREATING = "CREATING"
    CREATED = "CREATED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


TERMINAL_STATES = {ObjectState.CREATED, ObjectState.SKIPPED, ObjectState.FAILED}

_TRANSITIONS: Dict[ObjectState, set] = {
    ObjectState.PLANNED: {ObjectState.CHECKING_EXISTENCE, ObjectState.FAILED},
    ObjectState.CHECKING_EXISTENCE: {ObjectState.EXISTS, ObjectState.NOT_FOUND, ObjectState.FAILED},
    ObjectState.EXISTS: {ObjectState.SKIPPED},
    ObjectState.NOT_FOUND: {ObjectState.CREATING},
    ObjectState.CREATING: {ObjectState.CREATED, ObjectState.FAILED},
}


class ObjectStatus(str, Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


class ObjectOutcome(BaseModel):
    """Final state of one plan object after deployment."""

    category: str
    key: str
    state: ObjectState = ObjectState.PLANNED
    reason: Optional[str] = None
    remote_id: Optional[str] = None
    attempts: int = 0
    history: List[ObjectState] = Field(default_factory=lambda: [ObjectState.PLANNED])

    def advance(self, state: ObjectState) -> None:
        """Move to the next state, rejecting transitions the lifecycle does not allow."""
        allowed = _TRANSITIONS.get(self.state, set())
        if state not in allowed:
            raise ValueError(f"{self.category} '{self.key}': illegal transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, reason: str) -> None:
        self.advance(ObjectState.FAILED)
        self.reason = reason

    @property
    def status(self) -> Optional[ObjectStatus]:
        if self.state == ObjectState.CREATED:
            return ObjectStatus.CREATED
        if self.state == ObjectState.SKIPPED:
            return ObjectStatus.SKIPPED
        if self.state == ObjectState.FAILED:
            return ObjectStatus.FAILED
        return None


class CategorySummary(BaseModel):
    created: int = 0
    skipped: int = 0
    failed: int = 0


class DeploymentResult(BaseModel):
    """Outcome of every object in a plan, in dispatch order."""

    solution_unique_name: Optional[str] = None
    outcomes: List[ObjectOutcome] = Field(default_factory=list)

    def add(self, outcome: ObjectOutcome) -> ObjectOutcome:
        self.outcomes.append(outcome)
        return outcome

    def get(self, category: str, key: str) -> Optional[ObjectOutcome]:
        for o in self.outcomes:
            if o.category == category and o.key == key:
                return o
        return None

    def by_category(self, category: str) -> List[ObjectOutcome]:
        return [o for o in self.outcomes if o.category == category]

    @property
    def summary(self) -> Dict[str, CategorySummary]:
        counts: Dict[str, CategorySummary] = {}
        for o in self.outcomes:
            bucket = counts.setdefault(o.category, CategorySummary())
            if o.status == ObjectStatus.CREATED:
                bucket.created += 1
            elif o.status == ObjectStatus.SKIPPED:
                bucket.skipped += 1
            elif o.status == ObjectStatus.FAILED:
                bucket.failed += 1
        return counts

    @property
    def ok(self) -> bool:
        return all(o.state in (ObjectState.CREATED, ObjectState.SKIPPED) for o in self.outcomes)

    def failed(self) -> List[ObjectOutcome]:
        return [o for o in self.outcomes if o.state == ObjectState.FAILED]

    def to_report(self) -> dict:
        """JSON-ready artifact: counts per category and per-object detail."""
        return {
            "solution": self.solution_unique_name,
            "ok": self.ok,
            "summary": {k: v.model_dump() for k, v in self.summary.items()},
            "objects": [
                {
                    "category": o.category,
                    "key": o.key,
                    "status": o.status.value if o.status else o.state.value,
                    "reason": o.reason,
                    "remote_id": o.remote_id,
                    "attempts": o.attempts,
                }
                for o in self.outcomes
            ],
        }
