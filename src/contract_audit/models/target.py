"""Audit target and tool configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Mapping, Tuple

DEFAULT_FINDINGS_MARKERS: Tuple[str, ...] = ("analyzed", "result(s) found", "results found")


def sanitize_relative_path(relative_path: str, extension: str = ".sol") -> str:
    """Turn ``contracts/token/ERC20.sol`` into ``contracts_token_ERC20``."""

    posix = PurePosixPath(relative_path).as_posix()
    if extension and posix.endswith(extension):
        posix = posix[: -len(extension)]
    return posix.replace("/", "_")


@dataclass(frozen=True, slots=True)
class AuditTarget:
    """One contract source file to be audited."""

    absolute_path: Path
    relative_path: str
    sanitized_id: str

    @classmethod
    def from_paths(cls, root: Path, path: Path, extension: str = ".sol") -> "AuditTarget":
        relative = path.relative_to(root).as_posix()
        return cls(
            absolute_path=path.absolute(),
            relative_path=relative,
            sanitized_id=sanitize_relative_path(relative, extension),
        )

    @property
    def name(self) -> str:
        """Contract file name without its extension."""

        return self.absolute_path.stem


@dataclass(frozen=True, slots=True)
class ToolInvocationSpec:
    """Declarative description of how to invoke one analysis tool."""

    name: str
    command: Tuple[str, ...]
    timeout_seconds: float | None = None
    structured_artifact: str | None = None
    output_file: str = ""
    merge_stderr: bool = False
    findings_markers: Tuple[str, ...] = DEFAULT_FINDINGS_MARKERS
    report_lines: Tuple[str, ...] = ()
    diagram: str | None = None
    primary: bool = False
    label: str = ""
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def executable(self) -> str:
        return self.command[0] if self.command else ""

    @property
    def raw_artifact(self) -> str:
        return self.output_file or f"{self.name}-output.txt"

    @property
    def display_name(self) -> str:
        return self.label or self.name
