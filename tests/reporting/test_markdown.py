from contract_audit.models import Finding, FindingSeverity, SeverityCounts, ToolInvocationSpec, ToolOutcome
from contract_audit.reporting import format_aggregate_report, format_target_report
from contract_audit.reporting.markdown import status_label

SPECS = [
    ToolInvocationSpec(name="slither", command=("slither",), label="Slither", primary=True),
    ToolInvocationSpec(name="mythril", command=("myth",), label="Mythril"),
    ToolInvocationSpec(name="surya-graph", command=("surya",), label="Call graph", diagram="surya-graph.png"),
    ToolInvocationSpec(name="surya-inheritance", command=("surya",), diagram="surya-inheritance.png"),
]


def render(make_target, **overrides):
    values = {
        "specs": SPECS,
        "outcomes": {
            "slither": ToolOutcome("slither", True, True, "INFO: 1 result(s) found", 255),
            "mythril": ToolOutcome("mythril", False, False, "partial\n", 124, timed_out=True),
            "surya-graph": ToolOutcome("surya-graph", True, False, "digraph {}", 0),
        },
        "findings": [
            Finding("Reentrancy in\n   Vault.withdraw()", FindingSeverity.HIGH, check="reentrancy-eth"),
            Finding("Uses timestamp", FindingSeverity.LOW),
        ],
        "lint_issues": {"Solhint": ["  3:5  warning  Avoid tx.origin  avoid-tx-origin  Warning"]},
        "diagrams": {"surya-graph": True, "surya-inheritance": False},
        "primary_raw_output": "INFO: 1 result(s) found",
        "primary_label": "Slither",
        "audit_date": "2026-01-01T00:00:00+00:00",
        "compiler_version": "0.8.20",
    }
    values.update(overrides)
    return format_target_report(make_target("vault/Vault.sol"), **values)


def test_target_report_sections(make_target):
    report = render(make_target)

    assert report.startswith("# Vault Smart Contract Security Audit Report")
    assert "- **Contract:** vault/Vault.sol" in report
    assert "- **Compiler version:** 0.8.20" in report
    assert "| Slither | ✅ completed (issues found) | 255 |" in report
    assert "| Mythril | ❌ failed (timeout) | 124 |" in report
    assert "| Call graph | ✅ completed | 0 |" in report
    assert "| surya-inheritance | ⏭️ not run | - |" in report
    assert "![Call graph](./surya-graph.png)" in report
    assert "_Diagram not available" in report
    assert "- **High** `reentrancy-eth` – Reentrancy in Vault.withdraw()" in report
    assert "- **Low** – Uses timestamp" in report
    assert "| High | 1 |" in report
    assert "### Solhint issues" in report
    assert "## Full Output" in report
    assert "```\nINFO: 1 result(s) found\n```" in report


def test_target_report_without_findings_notes_fallback(make_target):
    report = render(make_target, findings=[], used_text_fallback=True, primary_raw_output=None)

    assert "No issues reported." in report
    assert "approximate" in report
    assert "_No output captured._" in report


def test_raw_output_containing_fences_is_wrapped_safely(make_target):
    report = render(make_target, primary_raw_output="```\ninjected\n```")

    assert "````\n```\ninjected\n```\n````" in report


def test_status_label_for_missing_outcome():
    assert status_label(None) == "⏭️ not run"


def test_aggregate_report_links_every_target():
    counts = SeverityCounts(high=2, medium=1, low=0)

    report = format_aggregate_report(
        ["A", "nested_B"],
        counts,
        audit_date="2026-01-01",
        compiler_version="0.8.20",
        parse_failures=["nested_B"],
    )

    assert report.startswith("# Comprehensive Smart Contract Security Audit Report")
    assert "- **Contracts audited:** 2" in report
    assert "- [A](./A/audit-report.md)" in report
    assert "- [nested_B](./nested_B/audit-report.md)" in report
    assert "- 2 high severity issues" in report
    assert "- 1 medium severity issues" in report
    assert "- 0 low severity issues" in report
    assert "## Notes" in report


def test_aggregate_report_with_no_targets():
    report = format_aggregate_report([], SeverityCounts(), audit_date="2026-01-01")

    assert "No contracts were audited." in report
    assert "Compiler version" not in report
    assert "## Notes" not in report
