"""
Working tree

The user's files: everything under the repository root except the
.sprig directory and a handful of names that never belong in history.
Paths are POSIX-style and relative to the root, so "src/app.py" is
the same filename on every platform.
"""

import logging
import os
from pathlib import Path

from .errors import ValidationError

logger = logging.getLogger(__name__)

# Names skipped when listing the working tree (matched against each path component)
DEFAULT_IGNORE = frozenset({
    ".sprig", ".git", ".svn", ".hg",
    "__pycache__", ".DS_Store", "Thumbs.db",
})


class WorkingTree:
    def __init__(self, root: Path, ignore=DEFAULT_IGNORE):
        self.root = root
        self.ignore = frozenset(ignore)

    def _path(self, filename: str) -> Path:
        """Resolve a tracked filename, refusing anything outside the root."""
        if not filename or "\0" in filename:
            raise ValidationError(f"Invalid filename: {filename!r}")
        # Never touch .sprig (or any other ignored name), whatever the caller asks for
        if any(part in self.ignore for part in Path(filename).parts):
            raise ValidationError(f"Path is inside an ignored directory: {filename!r}")
        path = self.root / filename
        try:
            path.resolve().relative_to(self.root.resolve())
        except ValueError:
            raise ValidationError(f"Path escapes the working tree: {filename!r}") from None
        return path

    def normalize(self, filename: str) -> str:
        """
        Turn a user-supplied path into the root-relative name history uses.

        Relative paths are taken from the root; ".." segments are folded
        so one file always has exactly one name.
        """
        root = self.root.resolve()
        path = Path(os.path.normpath(root / filename))
        try:
            rel = path.relative_to(root)
        except ValueError:
            # An absolute path may reach the root through a symlink
            try:
                rel = (path.parent.resolve() / path.name).relative_to(root)
            except ValueError:
                raise ValidationError(f"Path escapes the working tree: {filename!r}") from None
        if rel == Path("."):
            raise ValidationError(f"Invalid filename: {filename!r}")
        return rel.as_posix()

    def exists(self, filename: str) -> bool:
        return self._path(filename).is_file()

    def read(self, filename: str) -> bytes:
        return self._path(filename).read_bytes()

    def write(self, filename: str, data: bytes):
        path = self._path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Wrote %s (%d bytes)", filename, len(data))

    def delete(self, filename: str):
        """Delete a file if present, then prune directories it left empty."""
        path = self._path(filename)
        if path.is_file() or path.is_symlink():
            path.unlink()
            logger.debug("Deleted %s", filename)
        self._cleanup_empty_parents(path.parent)

    def files(self) -> list[str]:
        """Every plain file in the working tree, sorted."""
        result = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in self.ignore)
            rel_dir = Path(dirpath).relative_to(self.root)
            for name in filenames:
                if name in self.ignore:
                    continue
                if (Path(dirpath) / name).is_file():
                    result.append((rel_dir / name).as_posix())
        return sorted(result)

    def _cleanup_empty_parents(self, dir_path: Path):
        """Remove empty parent directories up to the root."""
        current = dir_path
        stop = self.root.resolve()
        while current.exists() and current.resolve() != stop:
            try:
                current.resolve().relative_to(stop)
            except ValueError:
                break
            try:
                if any(current.iterdir()):
                    break
                current.rmdir()
            except OSError:
                break
            current = current.parent
