"""Command-line interface implementation for the contract audit tooling."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Sequence

from ..classification import CountMode, KeywordTextStrategy, SeverityClassifier
from ..errors import ContractAuditError
from ..reporting import AGGREGATE_REPORT_FILENAME, AggregateReport, AggregateReportComposer
from ..service import AuditService
from ..tools import ToolManifest, ToolManifestManager

DEFAULT_CONTRACT_ROOT = "/share/contracts"
DEFAULT_OUTPUT_ROOT = "/share/auditReports"
SOURCE_ROOT_ENV = "CONTRACT_AUDIT_SOURCE_ROOT"
OUTPUT_ROOT_ENV = "CONTRACT_AUDIT_OUTPUT_ROOT"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def render_table(report: AggregateReport) -> str:
    """Render the severity tally as a simple text table for terminal output."""

    headers = ("Severity", "Findings")
    rows = [headers]
    for severity, count in report.severity_counts.to_dict().items():
        rows.append((severity, str(count)))

    widths = [max(len(row[idx]) for row in rows) for idx in range(len(headers))]

    def format_row(values: tuple[str, str]) -> str:
        return "  ".join(value.ljust(width) for value, width in zip(values, widths, strict=True))

    lines = [f"Contracts audited: {len(report.target_ids)}", ""]
    lines.append(format_row(headers))
    lines.append("  ".join("=" * width for width in widths))
    for row in rows[1:]:
        lines.append(format_row(row))
    if report.parse_failures:
        lines.append("")
        lines.append("Counted from raw output: " + ", ".join(report.parse_failures))
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    common.add_argument(
        "--tool-manifest",
        dest="tool_manifests",
        action="append",
        default=None,
        type=str,
        help="Additional tool manifest YAML merged over the packaged defaults.",
    )
    common.add_argument(
        "--text-count-mode",
        choices=[mode.value for mode in CountMode],
        default=CountMode.OCCURRENCE.value,
        help=(
            "How raw-output keyword matches are counted when structured results are "
            "unavailable: every occurrence, or once per keyword."
        ),
    )
    common.add_argument(
        "--no-escalation",
        dest="escalate",
        action="store_false",
        default=True,
        help="Do not count high-risk keywords (e.g. reentrancy) as High findings.",
    )
    common.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format for the final summary.",
    )

    parser = argparse.ArgumentParser(
        prog="contract-audit", description="Smart contract security audit CLI"
    )
    subparsers = parser.add_subparsers(dest="command")

    audit_parser = subparsers.add_parser(
        "audit",
        parents=[common],
        help="Run every analysis tool against every contract and write reports.",
        description=(
            "Audit all contracts below CONTRACT_ROOT. The contents of OUTPUT_ROOT are "
            "deleted before the run starts."
        ),
    )
    audit_parser.add_argument(
        "contract_root",
        type=Path,
        nargs="?",
        default=None,
        help=f"Directory containing contract sources (default: ${SOURCE_ROOT_ENV} or {DEFAULT_CONTRACT_ROOT}).",
    )
    audit_parser.add_argument(
        "output_root",
        type=Path,
        nargs="?",
        default=None,
        help=f"Directory receiving audit reports (default: ${OUTPUT_ROOT_ENV} or {DEFAULT_OUTPUT_ROOT}).",
    )
    audit_parser.add_argument(
        "--retries",
        type=_non_negative_int,
        default=0,
        help="Extra attempts for a tool that fails or times out.",
    )
    audit_parser.add_argument(
        "--extension",
        default=".sol",
        help="Source file extension selecting audit targets.",
    )
    audit_parser.add_argument(
        "--exclude-dir",
        dest="excluded_dirs",
        action="append",
        default=None,
        help="Directory name skipped during discovery (repeatable; default: node_modules).",
    )
    audit_parser.add_argument(
        "--compiler-bin",
        default="solc",
        help="Compiler executable queried for the version shown in reports.",
    )
    audit_parser.add_argument(
        "--dot-bin",
        default="dot",
        help="Graphviz executable used to render diagrams.",
    )

    compose_parser = subparsers.add_parser(
        "compose",
        parents=[common],
        help="Rebuild the comprehensive report from an existing output directory.",
    )
    compose_parser.add_argument(
        "output_root",
        type=Path,
        nargs="?",
        default=None,
        help=f"Directory holding a previous audit run (default: ${OUTPUT_ROOT_ENV} or {DEFAULT_OUTPUT_ROOT}).",
    )

    return parser


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must be zero or positive")
    return number


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)


def load_manifest(manifests: Sequence[str] | None) -> ToolManifest:
    return ToolManifestManager().load(list(manifests or []))


def create_classifier(*, count_mode: str, escalate: bool) -> SeverityClassifier:
    return SeverityClassifier(KeywordTextStrategy(count_mode=count_mode, escalate=escalate))


def create_service(
    output_root: Path,
    *,
    manifests: Sequence[str] | None = None,
    retries: int = 0,
    count_mode: str = CountMode.OCCURRENCE.value,
    escalate: bool = True,
    dot_bin: str = "dot",
) -> AuditService:
    """Create an audit service using the subprocess tool adapter."""

    manifest = load_manifest(manifests)
    return AuditService(
        output_root,
        tool_specs=manifest.tools,
        classifier=create_classifier(count_mode=count_mode, escalate=escalate),
        config_files=manifest.config_files,
        retries=retries,
        dot_bin=dot_bin,
    )


def create_composer(
    *,
    manifests: Sequence[str] | None = None,
    count_mode: str = CountMode.OCCURRENCE.value,
    escalate: bool = True,
) -> AggregateReportComposer:
    """Create a composer reading the primary tool's artifacts."""

    return AggregateReportComposer.for_tool(
        load_manifest(manifests).primary_tool,
        classifier=create_classifier(count_mode=count_mode, escalate=escalate),
    )


def _resolve_root(value: Path | None, env_name: str, default: str) -> Path:
    if value is not None:
        return value.resolve()
    return Path(os.environ.get(env_name) or default).resolve()


def _format_summary(report: AggregateReport, output_format: str) -> str:
    if output_format not in {"table", "json"}:
        raise ValueError("format must be either 'table' or 'json'")

    if output_format == "json":
        return json.dumps(report.to_dict(), indent=2)
    return render_table(report)


def _handle_audit(args: argparse.Namespace) -> int:
    contract_root = _resolve_root(args.contract_root, SOURCE_ROOT_ENV, DEFAULT_CONTRACT_ROOT)
    output_root = _resolve_root(args.output_root, OUTPUT_ROOT_ENV, DEFAULT_OUTPUT_ROOT)

    try:
        service = create_service(
            output_root,
            manifests=args.tool_manifests,
            retries=args.retries,
            count_mode=args.text_count_mode,
            escalate=args.escalate,
            dot_bin=args.dot_bin,
        )
        compiler_version = service.preflight(args.compiler_bin)
        result = service.run(
            contract_root,
            compiler_version=compiler_version,
            extension=args.extension,
            excluded_dirs=args.excluded_dirs,
        )
    except ContractAuditError as exc:
        logger.error("Audit aborted: %s", exc)
        print(f"Error: {exc}")
        return 2

    print(_format_summary(result.aggregate, args.format))
    return 0


def _handle_compose(args: argparse.Namespace) -> int:
    output_root = _resolve_root(args.output_root, OUTPUT_ROOT_ENV, DEFAULT_OUTPUT_ROOT)

    try:
        composer = create_composer(
            manifests=args.tool_manifests,
            count_mode=args.text_count_mode,
            escalate=args.escalate,
        )
        report = composer.compose(output_root)
    except ContractAuditError as exc:
        print(f"Error: {exc}")
        return 2

    logger.info("Rebuilt %s", output_root / AGGREGATE_REPORT_FILENAME)
    print(_format_summary(report, args.format))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by tests and the ``python -m`` invocation."""

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(args.log_level)
    if args.command == "audit":
        return _handle_audit(args)
    return _handle_compose(args)


def run() -> None:  # pragma: no cover - thin wrapper for module execution
    """Execute the CLI and exit with the produced status code."""

    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover - module execution guard
    run()
