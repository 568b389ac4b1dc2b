"""Tool manifest management."""

from .manifest_manager import ConfigFile, ToolManifest, ToolManifestManager

__all__ = [
    "ConfigFile",
    "ToolManifest",
    "ToolManifestManager",
]
