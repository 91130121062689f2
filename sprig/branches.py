"""
Branches

Named, movable pointers into the commit graph, plus the one branch
that is currently checked out.
"""

from dataclasses import dataclass, field

from .errors import (
    ConflictingStateError,
    CorruptRepositoryError,
    NotFoundError,
    ValidationError,
)


def validate_branch_name(name: str):
    """Reject names that are empty or could escape into paths."""
    if not name:
        raise ValidationError("Branch name cannot be empty")
    if "\0" in name:
        raise ValidationError(f"Branch name contains null byte: {name!r}")
    if ".." in name:
        raise ValidationError(f"Branch name contains '..': {name!r}")
    if "/" in name or "\\" in name:
        raise ValidationError(
            f"Branch name contains path separator: {name!r}. "
            f"Use '-' instead of '/' (e.g., 'feature-auth' not 'feature/auth')"
        )


@dataclass
class BranchRegistry:
    active: str
    branches: dict[str, str] = field(default_factory=dict)   # name -> commit hash

    @property
    def head(self) -> str:
        """Commit hash the active branch points at."""
        return self.branches[self.active]

    def __contains__(self, name) -> bool:
        return name in self.branches

    def names(self) -> list[str]:
        return sorted(self.branches)

    def get(self, name: str) -> str:
        try:
            return self.branches[name]
        except KeyError:
            raise NotFoundError("A branch with that name does not exist.") from None

    def create(self, name: str, commit_hash: str):
        validate_branch_name(name)
        if name in self.branches:
            raise ConflictingStateError("A branch with that name already exists.")
        self.branches[name] = commit_hash

    def delete(self, name: str):
        if name == self.active:
            raise ConflictingStateError("Cannot remove the current branch.")
        if name not in self.branches:
            raise NotFoundError("A branch with that name does not exist.")
        del self.branches[name]

    def move_active(self, commit_hash: str):
        self.branches[self.active] = commit_hash

    def switch(self, name: str):
        self.get(name)
        self.active = name

    def check(self, known_commits):
        """Verify every pointer resolves; a failure means the repo is damaged."""
        if self.active not in self.branches:
            raise CorruptRepositoryError(f"Active branch '{self.active}' has no pointer")
        for name, commit_hash in self.branches.items():
            if commit_hash not in known_commits:
                raise CorruptRepositoryError(
                    f"Branch '{name}' points at missing commit {commit_hash}"
                )

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "branches": dict(sorted(self.branches.items())),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BranchRegistry":
        return cls(active=d["active"], branches=dict(d.get("branches", {})))
