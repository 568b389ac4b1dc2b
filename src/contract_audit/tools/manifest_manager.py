"""Utilities for loading and merging tool manifest files."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Mapping, MutableMapping, Sequence

import yaml

from ..errors import ToolManifestError
from ..models import ToolInvocationSpec

_DEFAULT_MANIFEST = Path(__file__).resolve().parent / "manifests" / "default-tools.yaml"

_PLACEHOLDER_PROBE = {
    "target": "",
    "output_dir": "",
    "output_root": "",
    "artifact": "",
    "raw_artifact": "",
}

_LIST_FIELDS = ("findings_markers", "report_lines")
_STRING_FIELDS = ("structured_artifact", "output_file", "diagram", "label")


@dataclass(slots=True)
class ConfigFile:
    """A support file written into the output root before tools run."""

    path: str
    content: str

    def write(self, output_root: Path) -> Path:
        destination = output_root / self.path
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(self.content, encoding="utf-8")
        return destination


@dataclass(slots=True)
class ToolManifest:
    """Merged result of one or more manifest files."""

    tools: List[ToolInvocationSpec] = field(default_factory=list)
    config_files: List[ConfigFile] = field(default_factory=list)

    @property
    def primary_tool(self) -> ToolInvocationSpec | None:
        for spec in self.tools:
            if spec.primary:
                return spec
        return self.tools[0] if self.tools else None


class ToolManifestManager:
    """Load tool manifests and expose the enabled tools in declared order."""

    def __init__(self, default_manifests: Sequence[Path | str] | None = None) -> None:
        manifest_paths: List[Path]
        if default_manifests is None:
            manifest_paths = []
            if _DEFAULT_MANIFEST.exists():
                manifest_paths.append(_DEFAULT_MANIFEST)
        else:
            manifest_paths = [Path(path) for path in default_manifests]

        self._default_manifests = manifest_paths

    # ------------------------------------------------------------------
    def load(self, manifests: Sequence[Path | str] | None = None) -> ToolManifest:
        """Merge the default manifests with ``manifests`` and return enabled tools."""

        manifest_paths = [Path(path) for path in self._default_manifests]
        if manifests:
            manifest_paths.extend(Path(path) for path in manifests)

        merged: MutableMapping[str, Dict[str, Any]] = {}
        config_files: MutableMapping[str, ConfigFile] = {}
        for manifest_path in manifest_paths:
            data = self._load_manifest(manifest_path)

            for tool_config in data.get("tools", []) or []:
                if not isinstance(tool_config, Mapping):
                    raise ToolManifestError(f"Tool entries must be mappings: {manifest_path}")
                name = str(tool_config.get("name") or "").strip()
                if not name:
                    raise ToolManifestError(f"Tool entry without a name in {manifest_path}")
                entry = merged.setdefault(name, {"name": name, "enabled": True})
                entry.update({key: value for key, value in tool_config.items() if key != "name"})

            for file_config in data.get("config_files", []) or []:
                config_file = self._build_config_file(file_config, manifest_path)
                config_files[config_file.path] = config_file

        tools = [
            self._build_spec(entry)
            for entry in merged.values()
            if bool(entry.get("enabled", True))
        ]
        return ToolManifest(tools=tools, config_files=list(config_files.values()))

    def enabled_tools(self, manifests: Sequence[Path | str] | None = None) -> List[ToolInvocationSpec]:
        return self.load(manifests).tools

    # ------------------------------------------------------------------
    def _build_spec(self, entry: Mapping[str, Any]) -> ToolInvocationSpec:
        name = entry["name"]
        command = entry.get("command")
        if isinstance(command, str):
            command = command.split()
        if not isinstance(command, list) or not command:
            raise ToolManifestError(f"Tool {name!r} must declare a non-empty command list")

        parts = tuple(str(part) for part in command)
        for part in parts:
            try:
                part.format_map(_PLACEHOLDER_PROBE)
            except (KeyError, IndexError, ValueError) as exc:
                raise ToolManifestError(
                    f"Tool {name!r} uses an unknown placeholder in {part!r}"
                ) from exc

        timeout = entry.get("timeout_seconds")
        if timeout is not None:
            try:
                timeout = float(timeout)
            except (TypeError, ValueError) as exc:
                raise ToolManifestError(f"Tool {name!r} has an invalid timeout: {timeout!r}") from exc
            if timeout <= 0:
                raise ToolManifestError(f"Tool {name!r} timeout must be positive")

        kwargs: Dict[str, Any] = {}
        for key in _STRING_FIELDS:
            value = entry.get(key)
            if value:
                kwargs[key] = str(value)
        for key in _LIST_FIELDS:
            value = entry.get(key)
            if value is not None:
                if not isinstance(value, list):
                    raise ToolManifestError(f"Tool {name!r} field {key!r} must be a list")
                kwargs[key] = tuple(str(item) for item in value)

        env = entry.get("env") or {}
        if not isinstance(env, Mapping):
            raise ToolManifestError(f"Tool {name!r} env must be a mapping")

        return ToolInvocationSpec(
            name=name,
            command=parts,
            timeout_seconds=timeout,
            merge_stderr=bool(entry.get("merge_stderr", False)),
            primary=bool(entry.get("primary", False)),
            env={str(key): str(value) for key, value in env.items()},
            **kwargs,
        )

    def _build_config_file(self, file_config: Any, manifest_path: Path) -> ConfigFile:
        if not isinstance(file_config, Mapping) or not file_config.get("path"):
            raise ToolManifestError(f"Config file entries need a 'path': {manifest_path}")

        relative = PurePosixPath(str(file_config["path"]))
        if relative.is_absolute() or ".." in relative.parts:
            raise ToolManifestError(f"Config file path must stay inside the output root: {relative}")

        content = file_config.get("content", "")
        if not isinstance(content, str):
            content = json.dumps(content, indent=2)
        return ConfigFile(path=relative.as_posix(), content=content)

    def _load_manifest(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ToolManifestError(f"Tool manifest not found: {path}")

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:  # pragma: no cover - filesystem errors surfaced to caller
            raise ToolManifestError(f"Failed to read tool manifest {path}") from exc

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as exc:
            raise ToolManifestError(f"Invalid YAML in tool manifest {path}") from exc

        if not isinstance(data, Mapping):
            raise ToolManifestError(f"Tool manifest must be a mapping: {path}")

        return dict(data)


__all__ = [
    "ConfigFile",
    "ToolManifest",
    "ToolManifestManager",
]
