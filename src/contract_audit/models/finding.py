"""Finding models shared across the classifier and reporting layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class FindingSeverity(str, Enum):
    """Closed severity scale used for every finding."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class Finding:
    """A single reported issue with an associated severity."""

    description: str
    severity: FindingSeverity
    check: str | None = None
    source_tool: str | None = None


@dataclass(slots=True)
class SeverityCounts:
    """Running tally of findings per severity."""

    high: int = 0
    medium: int = 0
    low: int = 0
    unknown: int = 0

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> "SeverityCounts":
        counts = cls()
        for finding in findings:
            counts.increment(finding.severity)
        return counts

    def increment(self, severity: FindingSeverity, amount: int = 1) -> None:
        if severity is FindingSeverity.HIGH:
            self.high += amount
        elif severity is FindingSeverity.MEDIUM:
            self.medium += amount
        elif severity is FindingSeverity.LOW:
            self.low += amount
        else:
            self.unknown += amount

    def __add__(self, other: "SeverityCounts") -> "SeverityCounts":
        return SeverityCounts(
            high=self.high + other.high,
            medium=self.medium + other.medium,
            low=self.low + other.low,
            unknown=self.unknown + other.unknown,
        )

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low

    def to_dict(self) -> dict[str, int]:
        return {
            FindingSeverity.HIGH.value: self.high,
            FindingSeverity.MEDIUM.value: self.medium,
            FindingSeverity.LOW.value: self.low,
        }
