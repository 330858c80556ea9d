"""Findings reported by the parse, validation and generation stages."""

from dataclasses import dataclass, field
from typing import List, Literal

Stage = Literal["parse", "validation", "generation"]
Severity = Literal["error", "warning"]


@dataclass
class Finding:
    """A single issue found while processing a diagram."""

    stage: Stage
    code: str  # e.g., "MISSING_PK", "NAME_COLLISION"
    severity: Severity
    location: str  # e.g., "Customer" or "Customer.email"
    message: str
    details: dict = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "code": self.code,
            "severity": self.severity,
            "location": self.location,
            "message": self.message,
            "details": dict(self.details),
        }


def errors(findings: List[Finding]) -> List[Finding]:
    return [f for f in findings if f.is_error]


def warnings(findings: List[Finding]) -> List[Finding]:
    return [f for f in findings if not f.is_error]
