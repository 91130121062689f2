"""
Persisted state

The two mutable pieces of a repository, the branch registry and the
staging area, live in small JSON files under .sprig/. They are read
in full when a Repository opens and rewritten in full when an
operation succeeds:

    .sprig/
    ├── config.json      ← repository configuration
    ├── store.db         ← blobs + commit index (append-only)
    ├── branches.json    ← {"active": ..., "branches": {name: hash}}
    └── staging.json     ← {"additions": {...}, "removals": [...]}

Writes go through write-to-temp + rename so a crash mid-write leaves
either the old file or the new one, never a torn one.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path

from .branches import BranchRegistry
from .errors import CorruptRepositoryError
from .staging import StagingArea

logger = logging.getLogger(__name__)

BRANCHES_FILE = "branches.json"
STAGING_FILE = "staging.json"
CONFIG_FILE = "config.json"


def _replace_with_retry(src: Path, dst: Path):
    """Replace dst with src, retrying on Windows PermissionError.

    On Windows, antivirus or indexing services can briefly lock files,
    causing ``PermissionError`` on rename.  We retry up to 5 times with
    exponential backoff.  On POSIX, any error is raised immediately.
    """
    if os.name == "nt":
        for attempt in range(5):
            try:
                src.replace(dst)
                return
            except PermissionError:
                if attempt == 4:
                    raise
                time.sleep(0.01 * (2 ** attempt))
    else:
        src.replace(dst)


def _atomic_write(path: Path, content: str):
    """Write content to a file atomically via write-to-temp + rename."""
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        _replace_with_retry(Path(tmp_path), path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json(path: Path, data: dict):
    _atomic_write(path, json.dumps(data, indent=2, sort_keys=True))


def read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text())
    except FileNotFoundError:
        raise CorruptRepositoryError(f"Missing state file: {path}") from None
    except json.JSONDecodeError as e:
        raise CorruptRepositoryError(f"Malformed state file {path}: {e}") from e


def load_branches(sprig_dir: Path) -> BranchRegistry:
    data = read_json(sprig_dir / BRANCHES_FILE)
    try:
        return BranchRegistry.from_dict(data)
    except (KeyError, TypeError) as e:
        raise CorruptRepositoryError(f"Malformed branch registry: {e}") from e


def save_branches(sprig_dir: Path, registry: BranchRegistry):
    write_json(sprig_dir / BRANCHES_FILE, registry.to_dict())
    logger.debug("Saved branch registry (active=%s)", registry.active)


def load_staging(sprig_dir: Path) -> StagingArea:
    path = sprig_dir / STAGING_FILE
    if not path.exists():
        return StagingArea()
    return StagingArea.from_dict(read_json(path))


def save_staging(sprig_dir: Path, staging: StagingArea):
    write_json(sprig_dir / STAGING_FILE, staging.to_dict())
