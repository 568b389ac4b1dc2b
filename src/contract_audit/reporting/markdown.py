"""Markdown rendering for per-contract and aggregate audit reports."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

from ..models import (
    AuditTarget,
    Finding,
    SeverityCounts,
    ToolInvocationSpec,
    ToolOutcome,
    ToolStatus,
)

TARGET_REPORT_FILENAME = "audit-report.md"
AGGREGATE_REPORT_FILENAME = "comprehensive-audit-report.md"

STATUS_LABELS = {
    ToolStatus.COMPLETED: "✅ completed",
    ToolStatus.COMPLETED_WITH_FINDINGS: "✅ completed (issues found)",
    ToolStatus.FAILED: "❌ failed",
}


def status_label(outcome: ToolOutcome | None) -> str:
    if outcome is None:
        return "⏭️ not run"
    label = STATUS_LABELS[outcome.status]
    if outcome.timed_out:
        label += " (timeout)"
    return label


def _fence(text: str) -> list[str]:
    fence = "```"
    while fence in text:
        fence += "`"
    return [fence, text.rstrip("\n"), fence]


def _severity_rows(counts: SeverityCounts) -> list[str]:
    lines = ["| Severity | Findings |", "| --- | ---: |"]
    for severity, count in counts.to_dict().items():
        lines.append(f"| {severity} | {count} |")
    return lines


def format_target_report(
    target: AuditTarget,
    *,
    specs: Sequence[ToolInvocationSpec],
    outcomes: Mapping[str, ToolOutcome],
    findings: Sequence[Finding],
    lint_issues: Mapping[str, Sequence[str]],
    diagrams: Mapping[str, bool],
    primary_raw_output: str | None,
    primary_label: str,
    audit_date: str,
    compiler_version: str,
    used_text_fallback: bool = False,
) -> str:
    """Render the per-contract report."""

    lines: list[str] = [
        f"# {target.name} Smart Contract Security Audit Report",
        "",
        "## Overview",
        "",
        f"- **Contract:** {target.relative_path}",
        f"- **Audit date:** {audit_date}",
        f"- **Compiler version:** {compiler_version}",
        "",
        "## Tool Results",
        "",
        "| Tool | Status | Exit code |",
        "| --- | --- | ---: |",
    ]
    for spec in specs:
        outcome = outcomes.get(spec.name)
        exit_code = str(outcome.exit_code) if outcome else "-"
        lines.append(f"| {spec.display_name} | {status_label(outcome)} | {exit_code} |")

    diagram_specs = [spec for spec in specs if spec.diagram]
    if diagram_specs:
        lines.extend(["", "## Diagrams"])
        for spec in diagram_specs:
            lines.extend(["", f"### {spec.display_name}", ""])
            if diagrams.get(spec.name):
                lines.append(f"![{spec.display_name}](./{spec.diagram})")
            else:
                lines.append("_Diagram not available: the tool or the Graphviz rendering failed._")

    lines.extend(["", "## Findings Summary", "", f"### {primary_label} findings", ""])
    if used_text_fallback:
        lines.extend(
            [
                "_Structured results were unavailable; findings below are approximate "
                "matches against the raw output._",
                "",
            ]
        )
    if findings:
        for finding in findings:
            bullet = f"- **{finding.severity.value}**"
            if finding.check:
                bullet += f" `{finding.check}`"
            description = " ".join(finding.description.split())
            if description:
                bullet += f" – {description}"
            lines.append(bullet)
    else:
        lines.append("No issues reported.")

    lines.append("")
    lines.extend(_severity_rows(SeverityCounts.from_findings(findings)))

    for tool_label, issues in lint_issues.items():
        lines.extend(["", f"### {tool_label} issues", ""])
        if issues:
            lines.extend(f"- {issue.strip()}" for issue in issues)
        else:
            lines.append("No issues reported.")

    lines.extend(["", "## Full Output", "", f"### {primary_label} raw output", ""])
    if primary_raw_output is None:
        lines.append("_No output captured._")
    else:
        lines.extend(_fence(primary_raw_output))

    lines.append("")
    return "\n".join(lines)


def format_aggregate_report(
    target_ids: Iterable[str],
    counts: SeverityCounts,
    *,
    audit_date: str,
    compiler_version: str | None = None,
    parse_failures: Sequence[str] = (),
) -> str:
    """Render the project-wide summary linking every per-contract report."""

    target_ids = list(target_ids)
    lines: list[str] = [
        "# Comprehensive Smart Contract Security Audit Report",
        "",
        "## Overview",
        "",
        f"- **Audit date:** {audit_date}",
    ]
    if compiler_version:
        lines.append(f"- **Compiler version:** {compiler_version}")
    lines.extend(
        [
            f"- **Contracts audited:** {len(target_ids)}",
            "",
            "## Audited Contracts",
            "",
        ]
    )

    if target_ids:
        for target_id in target_ids:
            lines.append(f"- [{target_id}](./{target_id}/{TARGET_REPORT_FILENAME})")
    else:
        lines.append("No contracts were audited.")

    lines.extend(["", "## Findings by Severity", ""])
    lines.extend(_severity_rows(counts))
    lines.extend(
        [
            "",
            f"- {counts.high} high severity issues",
            f"- {counts.medium} medium severity issues",
            f"- {counts.low} low severity issues",
        ]
    )

    if parse_failures:
        lines.extend(
            [
                "",
                "## Notes",
                "",
                "Structured results could not be read for the contracts below; "
                "their counts come from raw output heuristics and may overcount.",
                "",
            ]
        )
        lines.extend(f"- {target_id}" for target_id in parse_failures)

    lines.append("")
    return "\n".join(lines)


def write_report(directory: Path, filename: str, content: str) -> Path:
    destination = directory / filename
    destination.write_text(content, encoding="utf-8")
    return destination


__all__ = [
    "AGGREGATE_REPORT_FILENAME",
    "STATUS_LABELS",
    "TARGET_REPORT_FILENAME",
    "format_aggregate_report",
    "format_target_report",
    "status_label",
    "write_report",
]
