"""Orchestration layer used by the CLI to audit a tree of contracts."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

from .adapters import (
    SubprocessToolAdapter,
    TargetDiscovery,
    ToolAdapter,
    check_tool_availability,
    probe_compiler_version,
)
from .classification import SeverityClassifier
from .errors import StructuredParseError, WorkspaceError
from .models import AuditTarget, Finding, SeverityCounts, ToolInvocationSpec, ToolOutcome
from .reporting import (
    TARGET_REPORT_FILENAME,
    AggregateReport,
    AggregateReportComposer,
    format_target_report,
)
from .tools import ConfigFile
from .workspace import OutputWorkspace

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = "unknown"

# Written when a structured-output tool produced nothing, so aggregation always finds valid JSON.
PLACEHOLDER_PAYLOAD = {"success": False, "error": None, "results": {"detectors": []}}


@dataclass(slots=True)
class TargetAuditReport:
    """Result of auditing a single contract."""

    target: AuditTarget
    outcomes: List[ToolOutcome]
    findings: List[Finding]
    rendered_markdown: str
    lint_issues: Dict[str, List[str]] = field(default_factory=dict)
    used_text_fallback: bool = False

    @property
    def severity_counts(self) -> SeverityCounts:
        return SeverityCounts.from_findings(self.findings)

    def outcome_for(self, tool_name: str) -> ToolOutcome | None:
        for outcome in self.outcomes:
            if outcome.tool_name == tool_name:
                return outcome
        return None


@dataclass(slots=True)
class AuditRunResult:
    """Result returned by :meth:`AuditService.run`."""

    reports: List[TargetAuditReport]
    aggregate: AggregateReport
    skipped_targets: List[str] = field(default_factory=list)
    compiler_version: str = UNKNOWN_VERSION


DiscoveryFactory = Callable[..., TargetDiscovery]


class AuditService:
    """Run every configured tool against every contract, one at a time.

    Targets and tools are processed sequentially: symbolic execution tools are
    heavy enough that concurrent runs exhaust memory and time out erratically.
    """

    def __init__(
        self,
        output_root: str | os.PathLike[str],
        *,
        tool_specs: Sequence[ToolInvocationSpec],
        adapter: ToolAdapter | None = None,
        classifier: SeverityClassifier | None = None,
        config_files: Iterable[ConfigFile] = (),
        retries: int = 0,
        dot_bin: str = "dot",
        diagram_timeout: float = 120,
        discovery_factory: DiscoveryFactory | None = None,
    ) -> None:
        if retries < 0:
            raise ValueError("retries must be zero or positive")

        self.workspace = OutputWorkspace(output_root)
        self.tool_specs = list(tool_specs)
        self.adapter = adapter or SubprocessToolAdapter()
        self.classifier = classifier or SeverityClassifier()
        self.config_files = list(config_files)
        self.retries = retries
        self.dot_bin = dot_bin
        self.diagram_timeout = diagram_timeout
        self._discovery_factory = discovery_factory or TargetDiscovery

    @property
    def output_root(self) -> Path:
        return self.workspace.output_root

    @property
    def primary_spec(self) -> ToolInvocationSpec | None:
        return self._primary_of(self.tool_specs)

    # ------------------------------------------------------------------
    def preflight(self, compiler_bin: str | None = "solc") -> str:
        """Log tool availability and return the compiler version string."""

        check_tool_availability(self.tool_specs)
        if not compiler_bin:
            return UNKNOWN_VERSION
        version = probe_compiler_version(compiler_bin)
        logger.info("Using compiler version: %s", version)
        return version

    def run(
        self,
        contract_root: str | os.PathLike[str],
        *,
        compiler_version: str = UNKNOWN_VERSION,
        extension: str = ".sol",
        excluded_dirs: Sequence[str] | None = None,
    ) -> AuditRunResult:
        """Audit every contract below ``contract_root`` and compose the aggregate report.

        Raises :class:`WorkspaceError` or :class:`DiscoveryError` only when the
        run cannot start at all; per-tool and per-target failures are recorded.
        """

        discovery = self._discovery_factory(
            contract_root, extension=extension, excluded_dirs=excluded_dirs
        )
        targets = discovery.discover()

        self._check_output_root(contract_root)
        self.workspace.prepare()
        self._write_config_files()

        logger.info("Starting smart contract security audit of %d contracts", len(targets))
        reports: List[TargetAuditReport] = []
        skipped: List[str] = []
        for target in targets:
            logger.info("========== Auditing %s ==========", target.relative_path)
            try:
                reports.append(self.audit(target, compiler_version=compiler_version))
            except WorkspaceError as exc:
                logger.error("Skipping %s: %s", target.relative_path, exc)
                skipped.append(target.relative_path)

        aggregate = self.composer().compose(self.output_root, compiler_version=compiler_version)
        logger.info("Security audit complete; reports saved in %s", self.output_root)
        return AuditRunResult(
            reports=reports,
            aggregate=aggregate,
            skipped_targets=skipped,
            compiler_version=compiler_version,
        )

    def _check_output_root(self, contract_root: str | os.PathLike[str]) -> None:
        # prepare() empties the output root, so it must never contain the sources.
        source = Path(contract_root).resolve()
        output = self.output_root.resolve()
        if source == output or source.is_relative_to(output):
            raise WorkspaceError(
                f"Output root {output} contains the contract sources at {source}; "
                "choose a separate output directory"
            )

    def composer(self) -> AggregateReportComposer:
        return AggregateReportComposer.for_tool(self.primary_spec, classifier=self.classifier)

    # ------------------------------------------------------------------
    def audit(
        self,
        target: AuditTarget,
        tool_specs: Sequence[ToolInvocationSpec] | None = None,
        *,
        compiler_version: str = UNKNOWN_VERSION,
    ) -> TargetAuditReport:
        """Run the tools for one target and write its artifacts and report."""

        specs = list(tool_specs) if tool_specs is not None else self.tool_specs
        output_dir = self.workspace.target_dir(target)

        outcomes: Dict[str, ToolOutcome] = {}
        diagrams: Dict[str, bool] = {}
        for spec in specs:
            logger.info("Running %s on %s", spec.display_name, target.relative_path)
            outcome = self._run_with_retries(spec, target, output_dir)
            outcomes[spec.name] = outcome

            self._write_artifact(output_dir / spec.raw_artifact, outcome.raw_output)
            if spec.structured_artifact and not (output_dir / spec.structured_artifact).exists():
                logger.warning("%s produced no %s; writing placeholder", spec.name, spec.structured_artifact)
                self._write_artifact(
                    output_dir / spec.structured_artifact, json.dumps(PLACEHOLDER_PAYLOAD)
                )
            if spec.diagram:
                diagrams[spec.name] = outcome.exit_succeeded and self._render_diagram(
                    spec, target, output_dir
                )

        primary = self._primary_of(specs)
        primary_outcome = outcomes.get(primary.name) if primary else None
        findings, used_fallback = self._extract_findings(primary, primary_outcome, output_dir)
        lint_issues = self._extract_lint_issues(specs, outcomes)

        markdown = format_target_report(
            target,
            specs=specs,
            outcomes=outcomes,
            findings=findings,
            lint_issues=lint_issues,
            diagrams=diagrams,
            primary_raw_output=primary_outcome.raw_output if primary_outcome else None,
            primary_label=primary.display_name if primary else "Primary analyzer",
            audit_date=datetime.now(timezone.utc).isoformat(),
            compiler_version=compiler_version,
            used_text_fallback=used_fallback,
        )
        self._write_artifact(output_dir / TARGET_REPORT_FILENAME, markdown)

        return TargetAuditReport(
            target=target,
            outcomes=list(outcomes.values()),
            findings=findings,
            rendered_markdown=markdown,
            lint_issues=lint_issues,
            used_text_fallback=used_fallback,
        )

    # ------------------------------------------------------------------
    def _run_with_retries(
        self, spec: ToolInvocationSpec, target: AuditTarget, output_dir: Path
    ) -> ToolOutcome:
        attempts = self.retries + 1
        outcome = self._attempt(spec, target, output_dir)
        for attempt in range(2, attempts + 1):
            if outcome.exit_succeeded:
                break
            logger.info("Retrying %s (attempt %d of %d)", spec.name, attempt, attempts)
            outcome = self._attempt(spec, target, output_dir)
        return outcome

    def _attempt(self, spec: ToolInvocationSpec, target: AuditTarget, output_dir: Path) -> ToolOutcome:
        if spec.structured_artifact:
            # Some analyzers refuse to overwrite an existing results file.
            try:
                (output_dir / spec.structured_artifact).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove stale %s: %s", spec.structured_artifact, exc)
        return self.adapter.run(spec, target, output_dir=output_dir)

    def _render_diagram(self, spec: ToolInvocationSpec, target: AuditTarget, output_dir: Path) -> bool:
        # The image name is literal text inside a command template.
        image = str(spec.diagram).replace("{", "{{").replace("}", "}}")
        render_spec = ToolInvocationSpec(
            name=f"{spec.name}-render",
            command=(self.dot_bin, "-Tpng", "{raw_artifact}", "-o", "{output_dir}/" + image),
            timeout_seconds=self.diagram_timeout,
            output_file=spec.raw_artifact,
        )
        outcome = self.adapter.run(render_spec, target, output_dir=output_dir)
        if not outcome.exit_succeeded:
            logger.warning("Rendering %s failed: %s", spec.diagram, outcome.raw_output.strip())
            return False
        return (output_dir / str(spec.diagram)).exists()

    def _extract_findings(
        self,
        primary: ToolInvocationSpec | None,
        outcome: ToolOutcome | None,
        output_dir: Path,
    ) -> tuple[List[Finding], bool]:
        if primary is None or outcome is None:
            return [], False

        if primary.structured_artifact:
            try:
                return (
                    self.classifier.classify_file(
                        output_dir / primary.structured_artifact, source_tool=primary.name
                    ),
                    False,
                )
            except StructuredParseError as exc:
                logger.warning("%s; falling back to raw output heuristics", exc)

        return self.classifier.findings_from_text(outcome.raw_output, source_tool=primary.name), True

    def _extract_lint_issues(
        self, specs: Sequence[ToolInvocationSpec], outcomes: Dict[str, ToolOutcome]
    ) -> Dict[str, List[str]]:
        issues: Dict[str, List[str]] = {}
        for spec in specs:
            if not spec.report_lines:
                continue
            outcome = outcomes.get(spec.name)
            lines = outcome.raw_output.splitlines() if outcome else []
            issues[spec.display_name] = [
                line for line in lines if any(marker in line for marker in spec.report_lines)
            ]
        return issues

    def _primary_of(self, specs: Sequence[ToolInvocationSpec]) -> ToolInvocationSpec | None:
        for spec in specs:
            if spec.primary:
                return spec
        return specs[0] if specs else None

    def _write_artifact(self, path: Path, content: str) -> None:
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            logger.error("Could not write %s: %s", path, exc)

    def _write_config_files(self) -> None:
        for config_file in self.config_files:
            try:
                config_file.write(self.output_root)
            except OSError as exc:
                logger.error("Could not write configuration file %s: %s", config_file.path, exc)


__all__ = [
    "AuditRunResult",
    "AuditService",
    "PLACEHOLDER_PAYLOAD",
    "TargetAuditReport",
]
