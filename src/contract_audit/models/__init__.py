"""Data models for audit targets, tool outcomes and findings."""

from .finding import Finding, FindingSeverity, SeverityCounts
from .outcome import TIMEOUT_MARKER, ToolOutcome, ToolStatus
from .target import AuditTarget, ToolInvocationSpec

__all__ = [
    "AuditTarget",
    "Finding",
    "FindingSeverity",
    "SeverityCounts",
    "TIMEOUT_MARKER",
    "ToolInvocationSpec",
    "ToolOutcome",
    "ToolStatus",
]
