"""All-or-nothing commit of generated files.

Merged files are first written to a staging directory next to the target,
then moved into place one by one.  Every overwritten file is backed up and
every created directory is recorded, so a failure at any point can put the
target directory back exactly as it was.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from flowstate.errors import FileSystemError

logger = logging.getLogger(__name__)


class StagedWriter:
    """Stage files in a temporary directory, then flush them transactionally.

    Usage::

        writer = StagedWriter(target_dir)
        try:
            writer.stage({"package.json": "{}\\n"})
            written = writer.commit()
        finally:
            writer.cleanup()
    """

    def __init__(self, target_dir: str | Path, prefix: str = ".flowstate-staging-") -> None:
        self.target_dir = Path(target_dir)
        self.prefix = prefix
        self._staging: Optional[Path] = None
        self._staged: dict[str, Path] = {}
        self._written: list[tuple[Path, Optional[Path]]] = []
        self._created_dirs: list[Path] = []

    # -- Staging -----------------------------------------------------------

    def stage(self, files: dict[str, str]) -> None:
        """Write every ``relative path -> content`` pair into the staging area."""
        anchor = _nearest_existing(self.target_dir.resolve().parent)
        try:
            self._staging = Path(tempfile.mkdtemp(prefix=self.prefix, dir=anchor))
            for rel_path, content in files.items():
                staged = self._staging / "files" / rel_path
                staged.parent.mkdir(parents=True, exist_ok=True)
                staged.write_text(content, encoding="utf-8")
                self._staged[rel_path] = staged
        except OSError as exc:
            raise FileSystemError(exc.filename or anchor, f"staging failed: {exc}") from exc
        logger.debug("Staged %d file(s) in %s", len(self._staged), self._staging)

    # -- Commit ------------------------------------------------------------

    def commit(self) -> list[str]:
        """Move staged files into the target; roll back everything on failure.

        Returns:
            Sorted relative paths of the files written.

        Raises:
            FileSystemError: After rollback, if any file could not be placed.
        """
        if self._staging is None:
            raise RuntimeError("commit() called before stage()")
        backups = self._staging / "backups"
        current = self.target_dir
        try:
            self._make_dirs(self.target_dir)
            for rel_path in sorted(self._staged):
                current = self.target_dir / rel_path
                if current.is_dir():
                    raise IsADirectoryError(errno.EISDIR, "a directory exists at this path", str(current))
                self._make_dirs(current.parent)
                backup: Optional[Path] = None
                if current.exists():
                    backup = backups / rel_path
                    backup.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(current, backup)
                os.replace(self._staged[rel_path], current)
                self._written.append((current, backup))
        except OSError as exc:
            logger.warning("Commit failed at %s, rolling back %d file(s)", current, len(self._written))
            self.rollback()
            raise FileSystemError(current, f"commit failed: {exc}") from exc
        written = sorted(self._staged)
        logger.info("Committed %d file(s) to %s", len(written), self.target_dir)
        return written

    def rollback(self) -> None:
        """Restore overwritten files, delete new ones, remove created directories."""
        for path, backup in reversed(self._written):
            if backup is not None:
                os.replace(backup, path)
            else:
                path.unlink(missing_ok=True)
        self._written.clear()
        for directory in reversed(self._created_dirs):
            if directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()
        self._created_dirs.clear()

    def cleanup(self) -> None:
        """Remove the staging directory (idempotent)."""
        if self._staging is not None and self._staging.exists():
            shutil.rmtree(self._staging)
        self._staging = None

    # -- Helpers -----------------------------------------------------------

    def _make_dirs(self, directory: Path) -> None:
        missing: list[Path] = []
        current = directory
        while not current.exists():
            missing.append(current)
            current = current.parent
        for path in reversed(missing):
            path.mkdir()
            self._created_dirs.append(path)


def _nearest_existing(path: Path) -> Path:
    current = path.resolve()
    while not current.exists():
        current = current.parent
    return current
