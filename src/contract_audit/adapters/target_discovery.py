"""Enumeration of contract source files below a source root."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from ..errors import DiscoveryError
from ..models import AuditTarget

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DIRS = ("node_modules",)
DEFAULT_EXTENSION = ".sol"


class TargetDiscovery:
    """Enumerate contract source files below a root directory.

    Traversal never follows directory symlinks, so link cycles cannot occur;
    symlinked directories are skipped rather than audited twice.
    """

    def __init__(
        self,
        contract_root: str | os.PathLike[str],
        *,
        extension: str = DEFAULT_EXTENSION,
        excluded_dirs: Optional[Iterable[str]] = None,
    ) -> None:
        self.contract_root = Path(contract_root).resolve()
        self.extension = extension if extension.startswith(".") else f".{extension}"
        self.excluded_dirs = frozenset(
            excluded_dirs if excluded_dirs is not None else DEFAULT_EXCLUDED_DIRS
        )

    def discover(self) -> List[AuditTarget]:
        """Return audit targets ordered by their relative path."""

        if not self.contract_root.is_dir():
            raise DiscoveryError(f"Contract source root not found: {self.contract_root}")

        source_files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(self.contract_root, onerror=self._on_error):
            dirnames[:] = [name for name in dirnames if name not in self.excluded_dirs]
            for filename in filenames:
                if filename.endswith(self.extension):
                    source_files.append(Path(dirpath) / filename)

        targets = [
            AuditTarget.from_paths(self.contract_root, path, self.extension)
            for path in source_files
        ]
        targets.sort(key=lambda target: target.relative_path)
        targets = self._disambiguate(targets)

        logger.info("Found %d contract files in %s", len(targets), self.contract_root)
        return targets

    # ------------------------------------------------------------------
    def _disambiguate(self, targets: List[AuditTarget]) -> List[AuditTarget]:
        # ``a/b_c.sol`` and ``a_b/c.sol`` sanitize to the same id; later ones get a suffix.
        seen: set[str] = set()
        unique: List[AuditTarget] = []
        for target in targets:
            sanitized_id = target.sanitized_id
            counter = 2
            while sanitized_id in seen:
                sanitized_id = f"{target.sanitized_id}-{counter}"
                counter += 1
            seen.add(sanitized_id)
            if sanitized_id != target.sanitized_id:
                logger.warning(
                    "Output id %s already taken; using %s for %s",
                    target.sanitized_id,
                    sanitized_id,
                    target.relative_path,
                )
                target = AuditTarget(
                    absolute_path=target.absolute_path,
                    relative_path=target.relative_path,
                    sanitized_id=sanitized_id,
                )
            unique.append(target)
        return unique

    def _on_error(self, exc: OSError) -> None:
        logger.warning("Skipping unreadable path during discovery: %s", exc)


__all__ = ["DEFAULT_EXCLUDED_DIRS", "DEFAULT_EXTENSION", "TargetDiscovery"]
