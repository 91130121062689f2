"""
Commits

A Commit is an immutable snapshot of the whole project: a mapping
from filename to blob hash, plus the message, timestamp and parent
links that place it in history.

Commits reference their parents by hash, never by object, so the
history is just an index (hash -> Commit) and every question about
ancestry is answered by walking that index. The graph has exactly
one root, "initial commit", stamped at the epoch so that every fresh
repository starts from the same id.
"""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field

from .cas import ContentStore, ObjectType
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

INITIAL_MESSAGE = "initial commit"
EPOCH = 0.0

# Shortest abbreviated id accepted by resolve()
MIN_PREFIX_LEN = 4


@dataclass(frozen=True)
class Commit:
    """One node of the history graph."""
    message: str
    timestamp: float
    files: dict[str, str] = field(default_factory=dict)   # filename -> blob hash
    parent: str | None = None
    merge_parent: str | None = None

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "timestamp": self.timestamp,
            "files": dict(sorted(self.files.items())),
            "parent": self.parent,
            "merge_parent": self.merge_parent,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Commit":
        return cls(
            message=d["message"],
            timestamp=d["timestamp"],
            files=dict(d.get("files", {})),
            parent=d.get("parent"),
            merge_parent=d.get("merge_parent"),
        )

    def to_bytes(self) -> bytes:
        """Canonical serialization: sorted keys, no whitespace."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Commit":
        return cls.from_dict(json.loads(raw.decode()))

    @property
    def parents(self) -> list[str]:
        return [p for p in (self.parent, self.merge_parent) if p is not None]

    @property
    def is_merge(self) -> bool:
        return self.merge_parent is not None


class CommitGraph:
    """
    The commit index plus ancestry queries.

    Loaded in full from the content store at the start of an operation.
    New commits are kept pending in memory until persist() writes them,
    so a failed operation never leaves half a history behind.
    """

    def __init__(self, store: ContentStore, clock=None):
        self.store = store
        self.clock = clock or time.time
        self._commits: dict[str, Commit] = {}
        self._pending: dict[str, Commit] = {}

    @classmethod
    def load(cls, store: ContentStore, clock=None) -> "CommitGraph":
        graph = cls(store, clock)
        for obj in store.iter_objects(ObjectType.COMMIT):
            graph._commits[obj.hash] = Commit.from_bytes(obj.data)
        logger.debug("Loaded %d commits", len(graph._commits))
        return graph

    # ── Creation ──────────────────────────────────────────────────

    def hash_commit(self, commit: Commit) -> str:
        return self.store.hash_content(commit.to_bytes(), ObjectType.COMMIT)

    def create_commit(
        self,
        message: str,
        parent: str | None,
        merge_parent: str | None = None,
        files: dict[str, str] | None = None,
        timestamp: float | None = None,
    ) -> tuple[str, Commit]:
        """
        Create a commit and add it to the index. Returns (hash, commit).

        A commit without a parent is the root: its timestamp is the
        epoch no matter what the caller passes.
        """
        if not message:
            raise ValidationError("Please enter a commit message.")
        for p in (parent, merge_parent):
            if p is not None and p not in self:
                raise NotFoundError(f"No commit with id {p} exists.")

        if parent is None:
            timestamp = EPOCH
            merge_parent = None
        elif timestamp is None:
            timestamp = self.clock()

        commit = Commit(
            message=message,
            timestamp=timestamp,
            files=dict(files or {}),
            parent=parent,
            merge_parent=merge_parent,
        )
        commit_hash = self.hash_commit(commit)
        if commit_hash not in self._commits:
            self._commits[commit_hash] = commit
            self._pending[commit_hash] = commit
        return commit_hash, commit

    def persist(self):
        """Write pending commits to the content store."""
        for commit in self._pending.values():
            self.store.store(commit.to_bytes(), ObjectType.COMMIT)
        self._pending.clear()

    def discard_pending(self):
        for commit_hash in self._pending:
            del self._commits[commit_hash]
        self._pending.clear()

    # ── Lookup ────────────────────────────────────────────────────

    def __contains__(self, commit_hash) -> bool:
        return commit_hash in self._commits

    def __len__(self) -> int:
        return len(self._commits)

    def get(self, commit_hash: str) -> Commit:
        try:
            return self._commits[commit_hash]
        except KeyError:
            raise NotFoundError("No commit with that id exists.") from None

    def hashes(self) -> list[str]:
        return list(self._commits)

    def items(self):
        return self._commits.items()

    def resolve(self, prefix: str) -> str:
        """Expand an abbreviated commit id to the full hash."""
        if prefix in self._commits:
            return prefix
        if len(prefix) < MIN_PREFIX_LEN:
            raise ValidationError(
                f"Commit id '{prefix}' is too short; use at least {MIN_PREFIX_LEN} characters."
            )
        matches = [h for h in self._commits if h.startswith(prefix)]
        if not matches:
            raise NotFoundError("No commit with that id exists.")
        if len(matches) > 1:
            raise ValidationError(f"Commit id '{prefix}' is ambiguous ({len(matches)} matches).")
        return matches[0]

    def find_by_message(self, message: str) -> list[str]:
        found = [h for h, c in self._commits.items() if c.message == message]
        if not found:
            raise NotFoundError("Found no commit with that message.")
        return found

    # ── Ancestry ──────────────────────────────────────────────────

    def ancestry_order(self, commit_hash: str) -> list[str]:
        """
        Every commit reachable from commit_hash, itself first.

        Breadth-first; for each commit the primary parent is queued
        before the merge parent. This order decides which common
        ancestor find_split() picks.

        Deliberately not a first-parent chain that visits each merge
        parent ahead of its primary parent: merged-in history is
        interleaved level by level, primary line first.
        """
        self.get(commit_hash)
        order = []
        seen = {commit_hash}
        queue = deque([commit_hash])
        while queue:
            current = queue.popleft()
            order.append(current)
            for p in self.get(current).parents:
                if p not in seen:
                    seen.add(p)
                    queue.append(p)
        return order

    def ancestry(self, commit_hash: str) -> set[str]:
        return set(self.ancestry_order(commit_hash))

    def is_ancestor(self, maybe_ancestor: str, of: str) -> bool:
        return maybe_ancestor in self.ancestry(of)

    def find_split(self, a: str, b: str) -> str | None:
        """The first ancestor of a (in ancestry_order) that b also reaches."""
        b_ancestry = self.ancestry(b)
        for candidate in self.ancestry_order(a):
            if candidate in b_ancestry:
                return candidate
        return None

    def first_parent_chain(self, commit_hash: str) -> list[tuple[str, Commit]]:
        """Commits from commit_hash back to the root along primary parents."""
        chain = []
        current = commit_hash
        while current is not None:
            commit = self.get(current)
            chain.append((current, commit))
            current = commit.parent
        return chain
