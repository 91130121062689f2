"""
Sprig: a small, local version-control system

A content-addressed object store, an immutable commit graph, a
staging area and a three-way merge, all living in a .sprig directory
next to your files.
"""

__version__ = "0.1.0"

__all__ = [
    # Core
    "Repository",
    # Content-addressed store
    "ContentStore",
    "CASObject",
    "ObjectType",
    "ContentStoreLimitError",
    # History
    "Commit",
    "CommitGraph",
    "StagingArea",
    "BranchRegistry",
    # Merge
    "MergeOutcome",
    "MergeResult",
    # Errors
    "SprigError",
    "ValidationError",
    "NotFoundError",
    "NoChangesError",
    "ConflictingStateError",
    "NotARepository",
]


# Lazy imports: only resolve when accessed
def __getattr__(name):
    if name == "Repository":
        from .repo import Repository

        return Repository
    if name in ("ContentStore", "CASObject", "ObjectType", "ContentStoreLimitError"):
        from . import cas

        return getattr(cas, name)
    if name in ("Commit", "CommitGraph"):
        from . import commits

        return getattr(commits, name)
    if name == "StagingArea":
        from .staging import StagingArea

        return StagingArea
    if name == "BranchRegistry":
        from .branches import BranchRegistry

        return BranchRegistry
    if name in ("MergeOutcome", "MergeResult"):
        from . import merge

        return getattr(merge, name)
    if name in (
        "SprigError",
        "ValidationError",
        "NotFoundError",
        "NoChangesError",
        "ConflictingStateError",
        "NotARepository",
    ):
        from . import errors

        return getattr(errors, name)
    raise AttributeError(f"module 'sprig' has no attribute {name!r}")
