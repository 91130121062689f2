"""
Repository

The high-level API the CLI talks to. It ties together the content
store, the commit graph, the branch registry, the staging area and
the working tree.

A Repository is the explicit context for one invocation:

    repo = Repository.find()        # load everything
    repo.add("app.py")              # mutate in memory, then persist
    repo.commit("Add app")
    result = repo.merge("feature")
    repo.close()

Every mutating operation validates first, then runs inside
_transaction(): new objects and commits go to SQLite in one
transaction, and the branch registry and staging area are rewritten
in full only once everything succeeded. On failure the in-memory
state is reloaded from disk, so nothing half-done is ever persisted.
"""

import json
import logging
import time
from contextlib import contextmanager
from pathlib import Path

from .branches import BranchRegistry, validate_branch_name
from .cas import ContentStore
from .commits import INITIAL_MESSAGE, Commit, CommitGraph
from .errors import (
    ConflictingStateError,
    CorruptRepositoryError,
    NoChangesError,
    NotARepository,
    NotFoundError,
    RepositoryExistsError,
    ValidationError,
)
from .merge import MergeOutcome, MergeResult, classify, conflict_content
from .staging import StagingArea
from .state import (
    CONFIG_FILE,
    load_branches,
    load_staging,
    save_branches,
    save_staging,
    write_json,
)
from .worktree import WorkingTree

logger = logging.getLogger(__name__)

REPO_DIR_NAME = ".sprig"
DEFAULT_BRANCH = "master"
UNTRACKED_IN_THE_WAY = (
    "There is an untracked file in the way; delete it, or add and commit it first."
)


class Repository:
    """
    A Sprig repository.

    Stores all data in a .sprig directory at the repository root.
    The repository root is the working tree.
    """

    def __init__(self, root: Path, clock=None):
        self.root = Path(root).resolve()
        self.sprig_dir = self.root / REPO_DIR_NAME
        self.db_path = self.sprig_dir / "store.db"

        if not self.sprig_dir.exists():
            raise NotARepository(self.root)

        config = self._read_config()
        max_blob_size = config.get("max_blob_size", 0)
        if max_blob_size < 0:
            raise ValidationError(
                f"Invalid config: max_blob_size must be >= 0, got {max_blob_size}\n"
                f"  Use 0 for default limit ({ContentStore.DEFAULT_MAX_BLOB_SIZE} bytes)"
            )

        self.clock = clock or time.time
        self.store = ContentStore(self.db_path, max_blob_size=max_blob_size)
        self.worktree = WorkingTree(self.root)
        self._load()

    @classmethod
    def init(
        cls,
        path: Path,
        initial_branch: str = DEFAULT_BRANCH,
        clock=None,
    ) -> "Repository":
        """
        Initialize a new repository.

        Creates the .sprig directory, the object store, the root commit
        ("initial commit", stamped at the epoch) and the initial branch
        pointing at it. Existing files are left untracked.
        """
        root = Path(path).resolve()
        sprig_dir = root / REPO_DIR_NAME

        if sprig_dir.exists():
            raise RepositoryExistsError(
                "A Sprig version-control system already exists in the current directory."
            )
        validate_branch_name(initial_branch)

        sprig_dir.mkdir(parents=True)
        write_json(sprig_dir / CONFIG_FILE, {
            "version": "0.1.0",
            "default_branch": initial_branch,
            "created_at": time.time(),
            "max_blob_size": ContentStore.DEFAULT_MAX_BLOB_SIZE,
        })

        store = ContentStore(sprig_dir / "store.db")
        try:
            graph = CommitGraph(store)
            root_hash, _ = graph.create_commit(INITIAL_MESSAGE, parent=None)
            graph.persist()
        finally:
            store.close()

        save_branches(sprig_dir, BranchRegistry(
            active=initial_branch,
            branches={initial_branch: root_hash},
        ))
        save_staging(sprig_dir, StagingArea())
        logger.info("Initialized repository at %s (root %s)", root, root_hash[:12])

        return cls(root, clock=clock)

    # ── Load / Persist ────────────────────────────────────────────

    def _load(self):
        """Read the whole repository state from disk."""
        self.commits = CommitGraph.load(self.store, self.clock)
        self.branches = load_branches(self.sprig_dir)
        self.branches.check(self.commits)
        self.staging = load_staging(self.sprig_dir)

    def _persist(self):
        save_branches(self.sprig_dir, self.branches)
        save_staging(self.sprig_dir, self.staging)

    @contextmanager
    def _transaction(self):
        """Persist everything on success; roll back to the on-disk state on any failure."""
        try:
            with self.store.batch():
                yield
                self.commits.persist()
            self._persist()
        except BaseException:
            self.commits.discard_pending()
            self.branches = load_branches(self.sprig_dir)
            self.staging = load_staging(self.sprig_dir)
            raise

    # ── Queries ───────────────────────────────────────────────────

    def head(self) -> str:
        """Commit hash of the active branch."""
        return self.branches.head

    @property
    def head_commit(self) -> Commit:
        return self.commits.get(self.branches.head)

    @property
    def active_branch(self) -> str:
        return self.branches.active

    def resolve_commit(self, commit_id: str) -> str:
        """Expand a (possibly abbreviated) commit id."""
        return self.commits.resolve(commit_id)

    def get_commit(self, commit_id: str) -> Commit:
        return self.commits.get(self.resolve_commit(commit_id))

    def log(self) -> list[tuple[str, Commit]]:
        """The active branch's history, newest first, along primary parents."""
        return self.commits.first_parent_chain(self.branches.head)

    def global_log(self) -> list[tuple[str, Commit]]:
        """Every commit ever made, newest first."""
        return sorted(
            self.commits.items(),
            key=lambda item: (item[1].timestamp, item[0]),
            reverse=True,
        )

    def find_commits(self, message: str) -> list[str]:
        """Ids of every commit whose message is exactly message."""
        return self.commits.find_by_message(message)

    def status(self) -> dict:
        """Branches, staged changes, unstaged modifications and untracked files."""
        head_files = self.head_commit.files
        additions = self.staging.additions
        removals = self.staging.removals
        working = set(self.worktree.files())

        modified = []
        for name in sorted(set(head_files) | set(additions)):
            present = name in working
            if name in additions:
                expected = additions[name]
            elif name in removals:
                continue
            else:
                expected = head_files[name]
            if not present:
                modified.append((name, "deleted"))
            elif self._working_hash(name) != expected:
                modified.append((name, "modified"))

        untracked = sorted(
            name for name in working
            if name not in additions and (name not in head_files or name in removals)
        )

        return {
            "root": str(self.root),
            "active": self.branches.active,
            "head": self.branches.head,
            "branches": self.branches.names(),
            "staged": sorted(additions),
            "removed": sorted(removals),
            "modified": modified,
            "untracked": untracked,
            "storage": self.store.stats(),
        }

    # ── Staging ───────────────────────────────────────────────────

    def add(self, filename: str) -> str:
        """Snapshot a working file into the store and stage it. Returns the blob hash."""
        name = self.worktree.normalize(filename)
        if not self.worktree.exists(name):
            raise NotFoundError("File does not exist.")

        with self._transaction():
            blob_hash = self.store.put(self.worktree.read(name), name)
            self.staging.stage_add(name, blob_hash, self.head_commit.files)
        logger.debug("Staged %s as %s", name, blob_hash[:12])
        return blob_hash

    def rm(self, filename: str):
        """
        Unstage a file and stage it for removal. If the head commit
        tracks it, the working copy is deleted as well.
        """
        name = self.worktree.normalize(filename)
        head_files = self.head_commit.files

        with self._transaction():
            self.staging.stage_remove(name, head_files)
            if name in head_files:
                self.worktree.delete(name)
        logger.debug("Staged %s for removal", name)

    def commit(self, message: str) -> str:
        """Record the staged changes as a new commit on the active branch."""
        if not message:
            raise ValidationError("Please enter a commit message.")
        with self._transaction():
            commit_hash = self._commit(message)
        return commit_hash

    def _commit(self, message: str, merge_parent: str | None = None) -> str:
        head_hash = self.branches.head
        files = self.staging.build_commit_tree(self.head_commit.files)
        commit_hash, _ = self.commits.create_commit(
            message,
            parent=head_hash,
            merge_parent=merge_parent,
            files=files,
        )
        self.branches.move_active(commit_hash)
        self.staging.clear()
        logger.info("Committed %s on %s: %s", commit_hash[:12], self.branches.active, message)
        return commit_hash

    # ── Checkout ──────────────────────────────────────────────────

    def checkout_file(self, filename: str):
        """Restore one file from the head commit."""
        self._checkout_file(self.head_commit, self.worktree.normalize(filename))

    def checkout_file_from_commit(self, commit_id: str, filename: str):
        """Restore one file as it was in the given commit."""
        commit = self.get_commit(commit_id)
        self._checkout_file(commit, self.worktree.normalize(filename))

    def _checkout_file(self, commit: Commit, name: str):
        if name not in commit.files:
            raise NotFoundError("File does not exist in that commit.")
        self.overwrite_working_file(name, commit)

    def overwrite_working_file(self, filename: str, source: Commit):
        """Write filename's content as tracked by source into the working tree."""
        self.worktree.write(filename, self.store.get(source.files[filename]))

    def checkout_branch(self, name: str):
        """Switch the working tree and the active branch to another branch."""
        if name not in self.branches:
            raise NotFoundError("No such branch exists.")
        if name == self.branches.active:
            raise ConflictingStateError("No need to checkout the current branch.")

        target = self.commits.get(self.branches.get(name))
        self._check_untracked(target)

        with self._transaction():
            self._materialize(target)
            self.staging.clear()
            self.branches.switch(name)
        logger.info("Switched to branch %s", name)

    def reset(self, commit_id: str):
        """Check out an arbitrary commit and move the active branch to it."""
        target_hash = self.resolve_commit(commit_id)
        target = self.commits.get(target_hash)
        self._check_untracked(target)

        with self._transaction():
            self._materialize(target)
            self.staging.clear()
            self.branches.move_active(target_hash)
        logger.info("Reset %s to %s", self.branches.active, target_hash[:12])

    def _check_untracked(self, target: Commit):
        """
        Refuse to clobber a working file the head doesn't track but the
        target does, unless it already holds exactly the target's content.
        """
        head_files = self.head_commit.files
        for name, blob_hash in sorted(target.files.items()):
            if name in head_files or not self.worktree.exists(name):
                continue
            if self._working_hash(name) != blob_hash:
                raise ConflictingStateError(UNTRACKED_IN_THE_WAY)

    def _materialize(self, target: Commit):
        """Write target's tree and delete what only the current head tracked."""
        for name in sorted(target.files):
            self.overwrite_working_file(name, target)
        for name in sorted(self.head_commit.files):
            if name not in target.files:
                self.worktree.delete(name)

    def _working_hash(self, name: str) -> str:
        return self.store.blob_hash(self.worktree.read(name), name)

    # ── Branches ──────────────────────────────────────────────────

    def branch(self, name: str):
        """Create a branch pointing at the current head."""
        with self._transaction():
            self.branches.create(name, self.branches.head)
        logger.info("Created branch %s at %s", name, self.branches.head[:12])

    def rm_branch(self, name: str):
        """Delete a branch pointer. Its commits stay in the store."""
        with self._transaction():
            self.branches.delete(name)
        logger.info("Deleted branch %s", name)

    # ── Merge ─────────────────────────────────────────────────────

    def merge(self, branch: str) -> MergeResult:
        """
        Merge another branch into the active one.

        Fast-forwards when the active head is an ancestor of the other
        head. Otherwise every file is classified against the split
        point, the outcomes are applied to the staging area and working
        tree, and a merge commit with two parents is recorded. Conflicts
        are written out with markers and committed; the result reports
        them.
        """
        if branch not in self.branches:
            raise NotFoundError("A branch with that name does not exist.")
        if branch == self.branches.active:
            raise ConflictingStateError("Cannot merge a branch with itself.")
        if not self.staging.is_empty:
            raise ConflictingStateError("You have uncommitted changes.")

        head_hash = self.branches.head
        other_hash = self.branches.get(branch)
        if self.commits.is_ancestor(other_hash, head_hash):
            raise ConflictingStateError("Given branch is an ancestor of the current branch.")

        other = self.commits.get(other_hash)
        self._check_untracked(other)
        result = MergeResult(branch=branch)

        if self.commits.is_ancestor(head_hash, other_hash):
            with self._transaction():
                self._materialize(other)
                self.staging.clear()
                self.branches.move_active(other_hash)
            result.fast_forward = True
            result.split = head_hash
            result.head = other_hash
            logger.info("Fast-forwarded %s to %s", self.branches.active, other_hash[:12])
            return result

        split_hash = self.commits.find_split(head_hash, other_hash)
        if split_hash is None:
            raise CorruptRepositoryError(
                f"Commits {head_hash} and {other_hash} share no ancestor"
            )
        split = self.commits.get(split_hash)
        head = self.head_commit
        result.split = split_hash

        with self._transaction():
            for name in sorted(set(split.files) | set(head.files) | set(other.files)):
                outcome = classify(
                    split.files.get(name), head.files.get(name), other.files.get(name),
                )
                result.outcomes[name] = outcome
                self._MERGE_ACTIONS[outcome](self, name, head, other)

            if self.staging.is_empty:
                raise NoChangesError("No changes added to the commit.")
            message = f"Merged {branch} into {self.branches.active}."
            result.commit = self._commit(message, merge_parent=other_hash)
            result.head = result.commit

        if result.conflict:
            logger.warning("Encountered a merge conflict in %s", ", ".join(result.conflicts))
        return result

    def _merge_keep(self, name: str, head: Commit, other: Commit):
        pass

    def _merge_take_other(self, name: str, head: Commit, other: Commit):
        self.overwrite_working_file(name, other)
        self.staging.stage_add(name, other.files[name], head.files)

    def _merge_delete(self, name: str, head: Commit, other: Commit):
        self.staging.stage_remove(name, head.files)
        self.worktree.delete(name)

    def _merge_conflict(self, name: str, head: Commit, other: Commit):
        ours = self.store.get(head.files[name]) if name in head.files else None
        theirs = self.store.get(other.files[name]) if name in other.files else None
        content = conflict_content(ours, theirs)
        self.worktree.write(name, content)
        blob_hash = self.store.put(content, name)
        self.staging.stage_add(name, blob_hash, head.files)

    _MERGE_ACTIONS = {
        MergeOutcome.MODIFIED_IN_OTHER: _merge_take_other,
        MergeOutcome.MODIFIED_IN_HEAD: _merge_keep,
        MergeOutcome.CONSISTENT: _merge_keep,
        MergeOutcome.DELETED_IN_OTHER: _merge_delete,
        MergeOutcome.DELETED_IN_HEAD: _merge_keep,
        MergeOutcome.ADDED_IN_HEAD: _merge_keep,
        MergeOutcome.ADDED_IN_OTHER: _merge_take_other,
        MergeOutcome.CONFLICT: _merge_conflict,
    }

    # ── Helpers ───────────────────────────────────────────────────

    def _read_config(self) -> dict:
        """Read repository configuration."""
        config_path = self.sprig_dir / CONFIG_FILE
        if config_path.exists():
            return json.loads(config_path.read_text())
        return {}

    @classmethod
    def find(cls, start_path: Path | None = None, clock=None) -> "Repository":
        """Find a repository by walking up from the given path."""
        path = Path(start_path or Path.cwd()).resolve()
        while True:
            if (path / REPO_DIR_NAME).is_dir():
                return cls(path, clock=clock)
            parent = path.parent
            if parent == path:
                break
            path = parent
        raise NotARepository(start_path or Path.cwd())

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def close(self):
        self.store.close()
