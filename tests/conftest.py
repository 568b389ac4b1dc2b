from __future__ import annotations

from pathlib import Path

import pytest

from contract_audit.models import AuditTarget


@pytest.fixture
def make_target(tmp_path: Path):
    """Create a contract file below ``tmp_path/contracts`` and return its target."""

    root = tmp_path / "contracts"

    def factory(relative: str, source: str = "contract Example {}\n") -> AuditTarget:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return AuditTarget.from_paths(root, path)

    return factory
