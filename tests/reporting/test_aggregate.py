import json
from pathlib import Path

import pytest

from contract_audit.errors import WorkspaceError
from contract_audit.reporting import AGGREGATE_REPORT_FILENAME, AggregateReportComposer, compose


def write_structured(target_dir: Path, impacts) -> None:
    target_dir.mkdir(parents=True, exist_ok=True)
    detectors = [{"check": f"check-{idx}", "impact": impact} for idx, impact in enumerate(impacts)]
    (target_dir / "slither-results.json").write_text(
        json.dumps({"success": True, "results": {"detectors": detectors}}), encoding="utf-8"
    )


def test_compose_sums_structured_results(tmp_path: Path):
    write_structured(tmp_path / "A", ["High", "Medium", "Informational"])
    write_structured(tmp_path / "B", ["Low", "High"])
    (tmp_path / ".solhint.json").write_text("{}", encoding="utf-8")
    (tmp_path / ".cache").mkdir()

    report = compose(tmp_path, audit_date="2026-01-01")

    assert report.target_ids == ["A", "B"]
    assert report.severity_counts.to_dict() == {"High": 2, "Medium": 1, "Low": 1}
    assert report.parse_failures == []
    written = (tmp_path / AGGREGATE_REPORT_FILENAME).read_text(encoding="utf-8")
    assert written == report.rendered_markdown
    assert "- [A](./A/audit-report.md)" in written


def test_compose_falls_back_to_raw_output(tmp_path: Path):
    write_structured(tmp_path / "A", ["High"])
    broken = tmp_path / "B"
    broken.mkdir()
    (broken / "slither-results.json").write_text("{truncated", encoding="utf-8")
    (broken / "slither-output.txt").write_text(
        "medium severity\nmedium severity\nReentrancy in Bank.withdraw()\n", encoding="utf-8"
    )
    missing = tmp_path / "C"
    missing.mkdir()
    (missing / "slither-output.txt").write_text("low severity\n", encoding="utf-8")

    report = compose(tmp_path, write=False)

    assert report.severity_counts.to_dict() == {"High": 2, "Medium": 2, "Low": 1}
    assert report.parse_failures == ["B", "C"]
    assert not (tmp_path / AGGREGATE_REPORT_FILENAME).exists()


def test_target_without_any_artifact_counts_zero(tmp_path: Path):
    (tmp_path / "Empty").mkdir()

    report = compose(tmp_path)

    assert report.target_ids == ["Empty"]
    assert report.severity_counts.total == 0


def test_compose_is_reproducible(tmp_path: Path):
    write_structured(tmp_path / "A", ["High", "Low"])
    composer = AggregateReportComposer()

    first = composer.compose(tmp_path, audit_date="2026-01-01")
    second = composer.compose(tmp_path, audit_date="2026-01-01")

    assert first.severity_counts == second.severity_counts
    assert first.rendered_markdown == second.rendered_markdown
    assert first.to_dict() == {
        "targets": ["A"],
        "summary": {"total_findings": 2, "counts": {"High": 1, "Medium": 0, "Low": 1}},
        "parse_failures": [],
    }


def test_compose_missing_root_raises(tmp_path: Path):
    with pytest.raises(WorkspaceError):
        compose(tmp_path / "missing")


def test_unwritable_aggregate_report_raises_workspace_error(tmp_path: Path):
    write_structured(tmp_path / "A", ["High"])
    (tmp_path / AGGREGATE_REPORT_FILENAME).mkdir()

    with pytest.raises(WorkspaceError):
        compose(tmp_path)
