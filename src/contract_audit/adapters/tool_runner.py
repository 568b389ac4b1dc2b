"""Tool adapter interfaces and the subprocess-backed implementation."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from ..models import TIMEOUT_MARKER, AuditTarget, ToolInvocationSpec, ToolOutcome

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
NOT_EXECUTABLE_EXIT_CODE = 126
NOT_FOUND_EXIT_CODE = 127

_COMPILER_VERSION_PATTERN = re.compile(r"Version:\s*(\S+)")


def build_placeholders(
    spec: ToolInvocationSpec, target: AuditTarget, output_dir: Path
) -> Dict[str, str]:
    """Return the values substituted into a tool command template."""

    output_dir = Path(output_dir).absolute()
    artifact = output_dir / spec.structured_artifact if spec.structured_artifact else ""
    return {
        "target": str(target.absolute_path),
        "output_dir": str(output_dir),
        "output_root": str(output_dir.parent),
        "artifact": str(artifact),
        "raw_artifact": str(output_dir / spec.raw_artifact),
    }


def render_command(spec: ToolInvocationSpec, placeholders: Mapping[str, str]) -> List[str]:
    return [part.format_map(placeholders) for part in spec.command]


class ToolAdapter(ABC):
    """Abstract contract for running one tool against one target."""

    @abstractmethod
    def run(
        self,
        spec: ToolInvocationSpec,
        target: AuditTarget,
        *,
        output_dir: Path,
    ) -> ToolOutcome:
        """Run the tool and return its normalized outcome. Must not raise for tool failure."""


class SubprocessToolAdapter(ToolAdapter):
    """Adapter that shells out to the configured tool binary without a shell."""

    def __init__(
        self,
        *,
        inherit_environment: bool = True,
        env: Optional[Mapping[str, str]] = None,
        working_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        self.inherit_environment = inherit_environment
        self.env = dict(env or {})
        self.working_dir = Path(working_dir).resolve() if working_dir else None

    # ------------------------------------------------------------------
    def run(
        self,
        spec: ToolInvocationSpec,
        target: AuditTarget,
        *,
        output_dir: Path,
    ) -> ToolOutcome:
        command = render_command(spec, build_placeholders(spec, target, output_dir))
        cwd = self.working_dir or target.absolute_path.parent
        return self.execute(spec, command, cwd=cwd)

    def execute(
        self,
        spec: ToolInvocationSpec,
        command: List[str],
        *,
        cwd: Path | None = None,
    ) -> ToolOutcome:
        """Run an already rendered command and classify its result."""

        logger.debug("Running %s: %s", spec.name, " ".join(command))
        try:
            completed = subprocess.run(  # noqa: S603 - deliberate invocation of external command
                command,
                cwd=cwd,
                env=self._build_environment(spec),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=spec.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            partial = _decode(exc.stdout)
            if spec.merge_stderr:
                partial = _join_streams(partial, _decode(exc.stderr))
            message = f"{TIMEOUT_MARKER}: {spec.name} exceeded {spec.timeout_seconds}s"
            logger.warning("%s timed out after %ss", spec.name, spec.timeout_seconds)
            return ToolOutcome(
                tool_name=spec.name,
                exit_succeeded=False,
                issues_found=False,
                raw_output=_join_streams(partial, message),
                exit_code=TIMEOUT_EXIT_CODE,
                timed_out=True,
            )
        except FileNotFoundError:
            logger.warning("Executable not found for %s: %s", spec.name, command[0])
            return self._launch_failure(spec, f"Executable not found: {command[0]}", NOT_FOUND_EXIT_CODE)
        except OSError as exc:
            logger.warning("Could not launch %s: %s", spec.name, exc)
            return self._launch_failure(spec, f"Failed to launch {command[0]}: {exc}", NOT_EXECUTABLE_EXIT_CODE)

        return self._classify(spec, completed.returncode, completed.stdout or "", completed.stderr or "")

    # ------------------------------------------------------------------
    def _classify(self, spec: ToolInvocationSpec, returncode: int, stdout: str, stderr: str) -> ToolOutcome:
        # Tools with merge_stderr report their summary line on stderr.
        if spec.merge_stderr:
            raw_output = _join_streams(stdout, stderr)
            marker_text = raw_output
        else:
            raw_output = stdout if stdout.strip() else stderr
            marker_text = stdout

        exit_succeeded = returncode == 0
        issues_found = False
        if not exit_succeeded and _has_marker(marker_text, spec.findings_markers):
            exit_succeeded = True
            issues_found = True

        if not exit_succeeded:
            logger.warning("%s failed with exit code %s", spec.name, returncode)

        return ToolOutcome(
            tool_name=spec.name,
            exit_succeeded=exit_succeeded,
            issues_found=issues_found,
            raw_output=raw_output,
            exit_code=returncode,
        )

    def _launch_failure(self, spec: ToolInvocationSpec, message: str, exit_code: int) -> ToolOutcome:
        return ToolOutcome(
            tool_name=spec.name,
            exit_succeeded=False,
            issues_found=False,
            raw_output=message,
            exit_code=exit_code,
        )

    def _build_environment(self, spec: ToolInvocationSpec) -> dict[str, str]:
        if self.inherit_environment:
            env_vars = os.environ.copy()
        else:
            env_vars = {"PATH": os.environ.get("PATH", "")}

        env_vars.update(self.env)
        env_vars.update(spec.env)
        return env_vars


def _has_marker(text: str, markers: Iterable[str]) -> bool:
    return any(marker and marker in text for marker in markers)


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _join_streams(first: str, second: str) -> str:
    parts = [part.rstrip("\n") for part in (first, second) if part and part.strip()]
    return "\n".join(parts)


# Toolchain preflight -----------------------------------------------------------
def probe_compiler_version(
    compiler_bin: str = "solc",
    *,
    adapter: SubprocessToolAdapter | None = None,
    timeout_seconds: float = 30,
) -> str:
    """Return the compiler version reported by ``<compiler_bin> --version``, or ``unknown``."""

    adapter = adapter or SubprocessToolAdapter()

    spec = ToolInvocationSpec(
        name="compiler-version",
        command=(compiler_bin, "--version"),
        timeout_seconds=timeout_seconds,
    )
    outcome = adapter.execute(spec, list(spec.command))
    if not outcome.exit_succeeded:
        return "unknown"

    match = _COMPILER_VERSION_PATTERN.search(outcome.raw_output)
    if match:
        return match.group(1)

    first_line = outcome.raw_output.strip().splitlines()[:1]
    return first_line[0] if first_line else "unknown"


def check_tool_availability(specs: Iterable[ToolInvocationSpec]) -> Dict[str, str | None]:
    """Resolve each tool executable on ``PATH`` and log what is missing."""

    availability: Dict[str, str | None] = {}
    for spec in specs:
        location = shutil.which(spec.executable) if spec.executable else None
        availability[spec.name] = location
        if location:
            logger.info("%s: %s", spec.name, location)
        else:
            logger.warning("%s: executable %r not installed", spec.name, spec.executable)
    return availability


__all__ = [
    "NOT_EXECUTABLE_EXIT_CODE",
    "NOT_FOUND_EXIT_CODE",
    "SubprocessToolAdapter",
    "TIMEOUT_EXIT_CODE",
    "ToolAdapter",
    "build_placeholders",
    "check_tool_availability",
    "probe_compiler_version",
    "render_command",
]
