"""
Staging Area

The pending change set layered over the head commit: files staged
for addition (filename -> blob hash) and files staged for removal.
A filename is never in both at once. The next commit consumes it.
"""

from dataclasses import dataclass, field

from .errors import NoChangesError, NothingToRemoveError


@dataclass
class StagingArea:
    additions: dict[str, str] = field(default_factory=dict)
    removals: set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.removals

    def stage_add(self, filename: str, blob_hash: str, head_files: dict[str, str]):
        """
        Stage a file for addition.

        Staging exactly what the head already tracks is not a change,
        so it leaves the file unstaged.
        """
        self.removals.discard(filename)
        if head_files.get(filename) == blob_hash:
            self.additions.pop(filename, None)
        else:
            self.additions[filename] = blob_hash

    def stage_remove(self, filename: str, head_files: dict[str, str]):
        """Stage a file for removal (unstaging any pending addition)."""
        if filename not in self.additions and filename not in head_files:
            raise NothingToRemoveError("No reason to remove the file.")
        self.additions.pop(filename, None)
        self.removals.add(filename)

    def build_commit_tree(self, head_files: dict[str, str]) -> dict[str, str]:
        """The file mapping the next commit would record."""
        if self.is_empty:
            raise NoChangesError("No changes added to the commit.")
        files = {name: h for name, h in head_files.items() if name not in self.removals}
        files.update(self.additions)
        return files

    def clear(self):
        self.additions = {}
        self.removals = set()

    def to_dict(self) -> dict:
        return {
            "additions": dict(sorted(self.additions.items())),
            "removals": sorted(self.removals),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "StagingArea":
        return cls(
            additions=dict(d.get("additions", {})),
            removals=set(d.get("removals", [])),
        )
