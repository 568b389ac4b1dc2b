"""Adapter layer for external analysis tools and target discovery."""

from .target_discovery import TargetDiscovery
from .tool_runner import (
    SubprocessToolAdapter,
    ToolAdapter,
    check_tool_availability,
    probe_compiler_version,
)

__all__ = [
    "SubprocessToolAdapter",
    "TargetDiscovery",
    "ToolAdapter",
    "check_tool_availability",
    "probe_compiler_version",
]
