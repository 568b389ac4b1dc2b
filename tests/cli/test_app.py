from __future__ import annotations

import json
from pathlib import Path

import pytest

from contract_audit.cli import app
from contract_audit.models import SeverityCounts
from contract_audit.reporting import AggregateReport


def write_target(output_root: Path, name: str, impacts: list[str]) -> None:
    target_dir = output_root / name
    target_dir.mkdir(parents=True)
    detectors = [{"check": "c", "impact": impact} for impact in impacts]
    (target_dir / "slither-results.json").write_text(
        json.dumps({"results": {"detectors": detectors}}), encoding="utf-8"
    )


def test_parser_defaults() -> None:
    args = app.build_parser().parse_args(["audit", "contracts", "reports"])

    assert args.command == "audit"
    assert args.contract_root == Path("contracts")
    assert args.output_root == Path("reports")
    assert args.retries == 0
    assert args.extension == ".sol"
    assert args.excluded_dirs is None
    assert args.text_count_mode == "occurrence"
    assert args.escalate is True
    assert args.format == "table"


def test_parser_rejects_negative_retries() -> None:
    with pytest.raises(SystemExit):
        app.build_parser().parse_args(["audit", "--retries", "-1"])


def test_no_command_prints_help(capsys) -> None:
    assert app.main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_roots_fall_back_to_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv(app.OUTPUT_ROOT_ENV, str(tmp_path))

    assert app._resolve_root(None, app.OUTPUT_ROOT_ENV, app.DEFAULT_OUTPUT_ROOT) == tmp_path.resolve()
    assert app._resolve_root(Path("elsewhere"), app.OUTPUT_ROOT_ENV, app.DEFAULT_OUTPUT_ROOT) == (
        Path("elsewhere").resolve()
    )

    monkeypatch.delenv(app.OUTPUT_ROOT_ENV)
    assert app._resolve_root(None, app.OUTPUT_ROOT_ENV, app.DEFAULT_OUTPUT_ROOT) == Path(
        app.DEFAULT_OUTPUT_ROOT
    ).resolve()


def test_compose_uses_environment_root(monkeypatch, tmp_path: Path, capsys) -> None:
    write_target(tmp_path, "A", ["High", "Medium"])
    write_target(tmp_path, "B", ["Low"])
    monkeypatch.setenv(app.OUTPUT_ROOT_ENV, str(tmp_path))

    exit_code = app.main(["compose", "--format", "json"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["targets"] == ["A", "B"]
    assert payload["summary"]["counts"] == {"High": 1, "Medium": 1, "Low": 1}
    assert (tmp_path / "comprehensive-audit-report.md").exists()


def test_compose_missing_root_exits_with_error(tmp_path: Path, capsys) -> None:
    exit_code = app.main(["compose", str(tmp_path / "missing")])

    assert exit_code == 2
    assert capsys.readouterr().out.startswith("Error:")


def test_audit_missing_contract_root_exits_with_error(tmp_path: Path, capsys) -> None:
    output_root = tmp_path / "reports"
    output_root.mkdir()
    (output_root / "keep.txt").write_text("previous run", encoding="utf-8")

    exit_code = app.main(
        [
            "audit",
            str(tmp_path / "missing"),
            str(output_root),
            "--compiler-bin",
            "contract-audit-missing-solc-xyz",
        ]
    )

    assert exit_code == 2
    assert "Error:" in capsys.readouterr().out
    assert (output_root / "keep.txt").exists()


def test_bad_manifest_exits_with_error(tmp_path: Path, capsys) -> None:
    manifest = tmp_path / "tools.yaml"
    manifest.write_text("tools: [oops\n", encoding="utf-8")

    exit_code = app.main(["compose", str(tmp_path), "--tool-manifest", str(manifest)])

    assert exit_code == 2
    assert "Error:" in capsys.readouterr().out


def test_render_table_lists_counts() -> None:
    report = AggregateReport(
        target_ids=["A", "B"],
        severity_counts=SeverityCounts(high=3, medium=0, low=1),
        rendered_markdown="",
        parse_failures=["B"],
    )

    table = app.render_table(report)

    assert table.splitlines()[0] == "Contracts audited: 2"
    assert "High      3" in table
    assert "Counted from raw output: B" in table


def test_audit_into_contract_root_exits_with_error(tmp_path: Path, capsys) -> None:
    contracts = tmp_path / "contracts"
    contracts.mkdir()
    (contracts / "A.sol").write_text("contract A {}", encoding="utf-8")

    exit_code = app.main(
        ["audit", str(contracts), str(contracts), "--compiler-bin", "contract-audit-missing-solc-xyz"]
    )

    assert exit_code == 2
    assert "Error:" in capsys.readouterr().out
    assert (contracts / "A.sol").exists()
