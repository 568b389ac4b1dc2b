"""Conversion helpers that turn raw analyzer output into :class:`Finding` objects."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Sequence, Tuple

from ..errors import StructuredParseError
from ..models import Finding, FindingSeverity, SeverityCounts

SEVERITY_MARKERS: Tuple[Tuple[str, FindingSeverity], ...] = (
    ("high severity", FindingSeverity.HIGH),
    ("medium severity", FindingSeverity.MEDIUM),
    ("low severity", FindingSeverity.LOW),
)

# Patterns that are high risk regardless of how the tool labelled them.
ESCALATION_KEYWORDS: Tuple[str, ...] = (
    "arbitrary user",
    "sends eth to arbitrary",
    "Reentrancy",
)


class CountMode(str, Enum):
    """How keyword hits in raw text are turned into counts."""

    OCCURRENCE = "occurrence"
    PRESENCE = "presence"


class TextSeverityStrategy(ABC):
    """Approximate severity extraction from unstructured tool output."""

    @abstractmethod
    def findings(self, raw_text: str, *, source_tool: str | None = None) -> List[Finding]:
        """Return one synthetic finding per counted keyword hit."""


class KeywordTextStrategy(TextSeverityStrategy):
    """Substring heuristics over raw analyzer output.

    Counting is not deduplicated: with :attr:`CountMode.OCCURRENCE` the same
    issue mentioned twice is counted twice, and an escalation keyword next to
    a ``high severity`` marker counts as two High findings.
    """

    def __init__(
        self,
        *,
        count_mode: CountMode | str = CountMode.OCCURRENCE,
        escalate: bool = True,
        severity_markers: Sequence[Tuple[str, FindingSeverity]] = SEVERITY_MARKERS,
        escalation_keywords: Sequence[str] = ESCALATION_KEYWORDS,
    ) -> None:
        self.count_mode = CountMode(count_mode)
        self.escalate = escalate
        self.severity_markers = tuple(severity_markers)
        self.escalation_keywords = tuple(escalation_keywords)

    def findings(self, raw_text: str, *, source_tool: str | None = None) -> List[Finding]:
        results: List[Finding] = []
        for marker, severity in self.severity_markers:
            for _ in range(self._hits(raw_text, marker)):
                results.append(
                    Finding(
                        description=f"Text match: '{marker}'",
                        severity=severity,
                        source_tool=source_tool,
                    )
                )

        if self.escalate:
            for keyword in self.escalation_keywords:
                for _ in range(self._hits(raw_text, keyword)):
                    results.append(
                        Finding(
                            description=f"High-risk pattern: '{keyword}'",
                            severity=FindingSeverity.HIGH,
                            source_tool=source_tool,
                        )
                    )

        return results

    def _hits(self, text: str, needle: str) -> int:
        occurrences = text.count(needle) if needle else 0
        if self.count_mode is CountMode.PRESENCE:
            return min(occurrences, 1)
        return occurrences


class SeverityClassifier:
    """Normalize structured and unstructured analyzer output to a closed severity scale."""

    _SEVERITY_LOOKUP = {
        "high": FindingSeverity.HIGH,
        "medium": FindingSeverity.MEDIUM,
        "low": FindingSeverity.LOW,
    }

    def __init__(self, text_strategy: TextSeverityStrategy | None = None) -> None:
        self.text_strategy = text_strategy or KeywordTextStrategy()

    # ------------------------------------------------------------------
    def classify(self, payload: Any, *, source_tool: str | None = None) -> List[Finding]:
        """Return findings for a decoded structured artifact.

        Accepts both ``{"results": [...]}`` and the slither layout
        ``{"results": {"detectors": [...]}}``.
        """

        return [
            self._normalize_entry(entry, source_tool)
            for entry in self._iter_entries(payload)
        ]

    def classify_file(self, path: Path, *, source_tool: str | None = None) -> List[Finding]:
        """Load and classify a structured artifact from disk."""

        if not path.exists():
            raise StructuredParseError(f"Structured artifact not found: {path}")

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise StructuredParseError(f"Cannot read structured artifact {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StructuredParseError(f"Invalid JSON in structured artifact {path}") from exc

        return self.classify(payload, source_tool=source_tool)

    def classify_from_text(
        self,
        raw_text: str,
        counts: SeverityCounts | None = None,
        *,
        source_tool: str | None = None,
    ) -> SeverityCounts:
        """Increment ``counts`` with the heuristic hits found in ``raw_text``."""

        counts = counts if counts is not None else SeverityCounts()
        for finding in self.text_strategy.findings(raw_text, source_tool=source_tool):
            counts.increment(finding.severity)
        return counts

    def findings_from_text(self, raw_text: str, *, source_tool: str | None = None) -> List[Finding]:
        return self.text_strategy.findings(raw_text, source_tool=source_tool)

    # ------------------------------------------------------------------
    def normalize_severity(self, level: object) -> FindingSeverity:
        if isinstance(level, FindingSeverity):
            return level

        if isinstance(level, str):
            normalized = level.strip().lower()
            if normalized in self._SEVERITY_LOOKUP:
                return self._SEVERITY_LOOKUP[normalized]

        return FindingSeverity.UNKNOWN

    def _iter_entries(self, payload: Any) -> Iterable[Mapping[str, Any]]:
        if not isinstance(payload, Mapping):
            raise StructuredParseError("Structured findings must be a JSON object")

        results = payload.get("results")
        if results is None:
            return []
        if isinstance(results, Mapping):
            results = results.get("detectors") or []
        if not isinstance(results, list):
            raise StructuredParseError("Structured findings 'results' must be a list")

        entries = []
        for entry in results:
            if not isinstance(entry, Mapping):
                raise StructuredParseError("Structured finding entries must be objects")
            entries.append(entry)
        return entries

    def _normalize_entry(self, entry: Mapping[str, Any], source_tool: str | None) -> Finding:
        severity = self.normalize_severity(entry.get("impact") or entry.get("severity"))
        check = entry.get("check") or entry.get("rule")
        description = str(entry.get("description") or entry.get("message") or check or "").strip()
        return Finding(
            description=description,
            severity=severity,
            check=str(check) if check else None,
            source_tool=source_tool,
        )


__all__ = [
    "CountMode",
    "ESCALATION_KEYWORDS",
    "KeywordTextStrategy",
    "SEVERITY_MARKERS",
    "SeverityClassifier",
    "TextSeverityStrategy",
]
