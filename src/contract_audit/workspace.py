"""Output directory management for audit runs."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .errors import WorkspaceError
from .models import AuditTarget

logger = logging.getLogger(__name__)


class OutputWorkspace:
    """Owns the output root of an audit run.

    :meth:`prepare` irreversibly deletes every artifact left by a previous run
    so each run starts from an empty directory. Callers pointing the output
    root at a directory holding anything else will lose that content.
    """

    def __init__(self, output_root: str | os.PathLike[str]) -> None:
        self.output_root = Path(output_root).absolute()

    def prepare(self) -> None:
        """Empty the output root, creating it when missing. Safe to call repeatedly."""

        if not self.output_root.exists():
            try:
                self.output_root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise WorkspaceError(f"Cannot create output root {self.output_root}: {exc}") from exc
            logger.info("Created audit output directory %s", self.output_root)
            return

        if not self.output_root.is_dir():
            raise WorkspaceError(f"Output root is not a directory: {self.output_root}")

        try:
            entries = sorted(self.output_root.iterdir())
        except OSError as exc:
            raise WorkspaceError(f"Cannot list output root {self.output_root}: {exc}") from exc

        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    self._remove_tree(entry)
                else:
                    entry.unlink()
            except OSError as exc:
                logger.error("Could not remove %s: %s", entry, exc)

        logger.info("Cleared previous audit reports in %s", self.output_root)

    def target_dir(self, target: AuditTarget) -> Path:
        """Create and return the output subdirectory for ``target``."""

        path = self.output_root / target.sanitized_id
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(f"Cannot create output directory {path}: {exc}") from exc
        return path

    def _remove_tree(self, root: Path) -> None:
        # Bottom-up so one undeletable entry does not stop the rest of the tree.
        for dirpath, dirnames, filenames in os.walk(root, topdown=False):
            current = Path(dirpath)
            for name in filenames:
                self._remove_entry(current / name, Path.unlink)
            for name in dirnames:
                child = current / name
                self._remove_entry(child, Path.unlink if child.is_symlink() else Path.rmdir)
        root.rmdir()

    def _remove_entry(self, path: Path, remover) -> None:  # noqa: ANN001
        try:
            remover(path)
        except OSError as exc:
            logger.error("Could not remove %s: %s", path, exc)


__all__ = ["OutputWorkspace"]
