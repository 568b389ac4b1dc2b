"""Project-wide aggregation over the artifacts left in an output directory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from ..classification import SeverityClassifier
from ..errors import StructuredParseError, WorkspaceError
from ..models import SeverityCounts, ToolInvocationSpec
from .markdown import AGGREGATE_REPORT_FILENAME, format_aggregate_report, write_report

logger = logging.getLogger(__name__)

DEFAULT_STRUCTURED_ARTIFACT = "slither-results.json"
DEFAULT_RAW_ARTIFACT = "slither-output.txt"


@dataclass(slots=True)
class AggregateReport:
    """Severity tally across every audited contract."""

    target_ids: List[str]
    severity_counts: SeverityCounts
    rendered_markdown: str
    parse_failures: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "targets": list(self.target_ids),
            "summary": {
                "total_findings": self.severity_counts.total,
                "counts": self.severity_counts.to_dict(),
            },
            "parse_failures": list(self.parse_failures),
        }


class AggregateReportComposer:
    """Rebuild the aggregate report strictly from on-disk artifacts.

    No tool is executed here, so composing twice over the same directory yields
    the same counts.
    """

    def __init__(
        self,
        *,
        classifier: SeverityClassifier | None = None,
        structured_artifact: str | None = DEFAULT_STRUCTURED_ARTIFACT,
        raw_artifact: str = DEFAULT_RAW_ARTIFACT,
        source_tool: str | None = None,
    ) -> None:
        self.classifier = classifier or SeverityClassifier()
        self.structured_artifact = structured_artifact
        self.raw_artifact = raw_artifact
        self.source_tool = source_tool

    @classmethod
    def for_tool(
        cls,
        spec: ToolInvocationSpec | None,
        *,
        classifier: SeverityClassifier | None = None,
    ) -> "AggregateReportComposer":
        """Build a composer that reads the artifacts written for ``spec``."""

        if spec is None:
            return cls(classifier=classifier)
        return cls(
            classifier=classifier,
            structured_artifact=spec.structured_artifact,
            raw_artifact=spec.raw_artifact,
            source_tool=spec.name,
        )

    def compose(
        self,
        output_root: str | os.PathLike[str],
        *,
        compiler_version: str | None = None,
        audit_date: str | None = None,
        write: bool = True,
    ) -> AggregateReport:
        root = Path(output_root)
        try:
            target_dirs = sorted(
                entry
                for entry in root.iterdir()
                if entry.is_dir() and not entry.name.startswith(".")
            )
        except OSError as exc:
            raise WorkspaceError(f"Cannot list audit output directory {root}: {exc}") from exc

        counts = SeverityCounts()
        parse_failures: List[str] = []
        for target_dir in target_dirs:
            target_counts, parsed = self._count_target(target_dir)
            counts = counts + target_counts
            if not parsed:
                parse_failures.append(target_dir.name)

        target_ids = [target_dir.name for target_dir in target_dirs]
        markdown = format_aggregate_report(
            target_ids,
            counts,
            audit_date=audit_date or datetime.now(timezone.utc).isoformat(),
            compiler_version=compiler_version,
            parse_failures=parse_failures,
        )
        if write:
            try:
                write_report(root, AGGREGATE_REPORT_FILENAME, markdown)
            except OSError as exc:
                raise WorkspaceError(
                    f"Cannot write {root / AGGREGATE_REPORT_FILENAME}: {exc}"
                ) from exc
            logger.info("Wrote aggregate report to %s", root / AGGREGATE_REPORT_FILENAME)

        return AggregateReport(
            target_ids=target_ids,
            severity_counts=counts,
            rendered_markdown=markdown,
            parse_failures=parse_failures,
        )

    # ------------------------------------------------------------------
    def _count_target(self, target_dir: Path) -> tuple[SeverityCounts, bool]:
        if self.structured_artifact:
            try:
                findings = self.classifier.classify_file(
                    target_dir / self.structured_artifact, source_tool=self.source_tool
                )
            except StructuredParseError as exc:
                logger.warning("%s: %s; falling back to raw output heuristics", target_dir.name, exc)
            else:
                return SeverityCounts.from_findings(findings), True

        raw_path = target_dir / self.raw_artifact
        try:
            raw_text = raw_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("%s: raw output unavailable (%s); counting no findings", target_dir.name, exc)
            return SeverityCounts(), False

        return self.classifier.classify_from_text(raw_text, source_tool=self.source_tool), False


def compose(output_root: str | os.PathLike[str], **kwargs: Any) -> AggregateReport:
    """Compose the aggregate report for ``output_root`` with default artifact names."""

    return AggregateReportComposer().compose(output_root, **kwargs)


__all__ = [
    "AggregateReport",
    "AggregateReportComposer",
    "DEFAULT_RAW_ARTIFACT",
    "DEFAULT_STRUCTURED_ARTIFACT",
    "compose",
]
