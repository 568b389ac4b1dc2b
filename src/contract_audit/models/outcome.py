"""Normalized result of a single external tool invocation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

TIMEOUT_MARKER = "[contract-audit] TIMEOUT"


class ToolStatus(str, Enum):
    """Completion state shown in the per-target completion matrix."""

    COMPLETED = "completed"
    COMPLETED_WITH_FINDINGS = "completed-with-findings"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    """Outcome of running one tool against one target.

    ``issues_found`` is independent from ``exit_succeeded``: analyzers commonly
    exit nonzero when they report issues, which is not a pipeline failure.
    """

    tool_name: str
    exit_succeeded: bool
    issues_found: bool
    raw_output: str
    exit_code: int
    timed_out: bool = False

    @property
    def status(self) -> ToolStatus:
        if not self.exit_succeeded:
            return ToolStatus.FAILED
        if self.issues_found:
            return ToolStatus.COMPLETED_WITH_FINDINGS
        return ToolStatus.COMPLETED
