"""
Merge classification

Three-way merge works file by file. For every filename tracked by the
split point (S), the active head (H) or the other head (O), the three
blob hashes (or None where the file is absent) decide exactly one
outcome. The rules are checked in order; the first that matches wins.

    S      H      O      outcome
    -----  -----  -----  -------------------------------------------
    x      x      y      MODIFIED_IN_OTHER   take O's version
    x      y      x      MODIFIED_IN_HEAD    keep H
    ?      y      y      CONSISTENT          nothing to do
    ?      -      -      CONSISTENT          nothing to do
    x      x      -      DELETED_IN_OTHER    remove the file
    x      -      x      DELETED_IN_HEAD     stays deleted
    -      y      -      ADDED_IN_HEAD       keep H
    -      -      y      ADDED_IN_OTHER      take O's version
    anything else        CONFLICT            write both with markers

Repository.merge() applies the outcome through a single dispatch table.
"""

from dataclasses import dataclass, field
from enum import Enum

CONFLICT_HEAD = b"<<<<<<< HEAD\n"
CONFLICT_SEP = b"=======\n"
CONFLICT_END = b">>>>>>>\n"


class MergeOutcome(Enum):
    MODIFIED_IN_OTHER = "modified_in_other"
    MODIFIED_IN_HEAD = "modified_in_head"
    CONSISTENT = "consistent"
    DELETED_IN_OTHER = "deleted_in_other"
    DELETED_IN_HEAD = "deleted_in_head"
    ADDED_IN_HEAD = "added_in_head"
    ADDED_IN_OTHER = "added_in_other"
    CONFLICT = "conflict"


def classify(split: str | None, head: str | None, other: str | None) -> MergeOutcome:
    """Classify one file from its blob hash at the split point and both heads."""
    if split is not None:
        if head == split and other is not None and other != split:
            return MergeOutcome.MODIFIED_IN_OTHER
        if other == split and head is not None and head != split:
            return MergeOutcome.MODIFIED_IN_HEAD
    if head == other:
        return MergeOutcome.CONSISTENT
    if split is not None:
        if head == split and other is None:
            return MergeOutcome.DELETED_IN_OTHER
        if other == split and head is None:
            return MergeOutcome.DELETED_IN_HEAD
    else:
        if head is not None and other is None:
            return MergeOutcome.ADDED_IN_HEAD
        if head is None and other is not None:
            return MergeOutcome.ADDED_IN_OTHER
    return MergeOutcome.CONFLICT


def conflict_content(head: bytes | None, other: bytes | None) -> bytes:
    """Both sides of a conflicted file, demarcated by conflict markers."""
    return (
        CONFLICT_HEAD + (head or b"")
        + CONFLICT_SEP + (other or b"")
        + CONFLICT_END
    )


@dataclass
class MergeResult:
    """What a merge did, for the caller to report."""
    branch: str
    fast_forward: bool = False
    commit: str | None = None      # merge commit, None on fast-forward
    head: str | None = None        # active branch head afterwards
    split: str | None = None
    outcomes: dict[str, MergeOutcome] = field(default_factory=dict)

    @property
    def conflicts(self) -> list[str]:
        return sorted(f for f, o in self.outcomes.items() if o == MergeOutcome.CONFLICT)

    @property
    def conflict(self) -> bool:
        return bool(self.conflicts)

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "fast_forward": self.fast_forward,
            "commit": self.commit,
            "head": self.head,
            "split": self.split,
            "conflict": self.conflict,
            "conflicts": self.conflicts,
            "outcomes": {f: o.value for f, o in sorted(self.outcomes.items())},
        }
