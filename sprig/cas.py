"""
Content-Addressed Store (CAS)

The foundational storage layer. Every object is stored exactly once,
addressed by the SHA-256 of its type-tagged bytes. Two kinds of
objects live here:

- blobs: a file's bytes plus the name it was added under
- commits: serialized commit records (the commit index is simply
  every object of type ``commit``)

The store only ever grows. Nothing is rewritten or collected.
"""

import hashlib
import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ObjectType(Enum):
    BLOB = "blob"      # File snapshot: name + content
    COMMIT = "commit"  # Commit record


@dataclass(frozen=True)
class CASObject:
    """An immutable content-addressed object."""

    hash: str
    type: ObjectType
    data: bytes
    size: int


@dataclass(frozen=True)
class Blob:
    """A stored snapshot of one file: the name it was added as, and its bytes."""

    name: str
    data: bytes

    def to_bytes(self) -> bytes:
        return self.name.encode("utf-8") + b"\x00" + self.data

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Blob":
        name, data = raw.split(b"\x00", 1)
        return cls(name=name.decode("utf-8"), data=data)


class ContentStoreLimitError(ValidationError):
    """Raised when a store operation exceeds configured limits."""


class ContentStore:
    """
    SQLite-backed content-addressed store.

    A single ``objects`` table holds blobs and commits side by side;
    the type prefix baked into every hash keeps the two namespaces
    from colliding.
    """

    # Default: 100 MB max blob size
    # Note: 0 or missing value uses DEFAULT_MAX_BLOB_SIZE
    DEFAULT_MAX_BLOB_SIZE = 100 * 1024 * 1024

    def __init__(self, db_path: Path, max_blob_size: int = 0):
        self.db_path = db_path
        self.max_blob_size = max_blob_size if max_blob_size > 0 else self.DEFAULT_MAX_BLOB_SIZE
        self.conn = sqlite3.connect(str(db_path))
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self._in_batch = False
        self._closed = False
        self._init_tables()

    def _init_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS objects (
                hash TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                data BLOB NOT NULL,
                size INTEGER NOT NULL,
                created_at REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_objects_type
                ON objects(type);
        """)
        self.conn.commit()

    # ── Batch Transactions ────────────────────────────────────────

    @contextmanager
    def batch(self):
        """Context manager for batched writes, single commit at the end."""
        if self._in_batch:
            yield  # nested, pass through
            return
        self._in_batch = True
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
            self.conn.commit()
        except BaseException:
            self.conn.rollback()
            raise
        finally:
            self._in_batch = False

    # ── Core Operations ───────────────────────────────────────────

    def hash_content(self, content: bytes, obj_type: ObjectType) -> str:
        """
        Hash content with a type prefix so a blob and a commit with
        identical bytes still get different ids.
        """
        header = f"{obj_type.value}:{len(content)}:".encode()
        return hashlib.sha256(header + content).hexdigest()

    def store(self, content: bytes, obj_type: ObjectType) -> str:
        """
        Store content and return its hash. Idempotent: storing
        the same content twice is a no-op that returns the same hash.
        """
        content_hash = self.hash_content(content, obj_type)

        if self.exists(content_hash):
            return content_hash

        if obj_type == ObjectType.BLOB and len(content) > self.max_blob_size:
            raise ContentStoreLimitError(
                f"Blob size {len(content)} bytes exceeds limit of {self.max_blob_size} bytes"
            )

        self.conn.execute(
            """INSERT OR IGNORE INTO objects
               (hash, type, data, size, created_at) VALUES (?, ?, ?, ?, ?)""",
            (content_hash, obj_type.value, content, len(content), time.time()),
        )
        if not self._in_batch:
            self.conn.commit()
        logger.debug("Stored %s %s (%d bytes)", obj_type.value, content_hash[:12], len(content))
        return content_hash

    def retrieve(self, content_hash: str) -> CASObject | None:
        """Retrieve an object by its hash."""
        row = self.conn.execute(
            "SELECT hash, type, data, size FROM objects WHERE hash = ?", (content_hash,)
        ).fetchone()

        if row is None:
            return None

        return CASObject(
            hash=row[0],
            type=ObjectType(row[1]),
            data=bytes(row[2]),
            size=row[3],
        )

    def exists(self, content_hash: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM objects WHERE hash = ?", (content_hash,)).fetchone()
        return row is not None

    def iter_objects(self, obj_type: ObjectType):
        """Yield every stored object of one type, oldest first."""
        rows = self.conn.execute(
            "SELECT hash, type, data, size FROM objects WHERE type = ? ORDER BY created_at, hash",
            (obj_type.value,),
        ).fetchall()
        for r in rows:
            yield CASObject(hash=r[0], type=ObjectType(r[1]), data=bytes(r[2]), size=r[3])

    # ── Blobs ─────────────────────────────────────────────────────

    def put(self, data: bytes, name: str) -> str:
        """Store a file snapshot and return its blob hash."""
        return self.store(Blob(name, data).to_bytes(), ObjectType.BLOB)

    def get(self, blob_hash: str) -> bytes:
        """Return the content of a stored blob."""
        obj = self.retrieve(blob_hash)
        if obj is None or obj.type != ObjectType.BLOB:
            raise NotFoundError(f"No blob with id {blob_hash} in the object store.")
        return Blob.from_bytes(obj.data).data

    def blob_hash(self, data: bytes, name: str) -> str:
        """The hash put() would return, without storing anything."""
        return self.hash_content(Blob(name, data).to_bytes(), ObjectType.BLOB)

    # ── Statistics ────────────────────────────────────────────────

    def stats(self) -> dict:
        """Storage statistics."""
        row = self.conn.execute("SELECT COUNT(*), COALESCE(SUM(size), 0) FROM objects").fetchone()
        by_type = {}
        for row2 in self.conn.execute(
            "SELECT type, COUNT(*), COALESCE(SUM(size), 0) FROM objects GROUP BY type"
        ):
            by_type[row2[0]] = {"count": row2[1], "bytes": row2[2]}

        return {
            "total_objects": row[0],
            "total_bytes": row[1],
            "by_type": by_type,
        }

    def close(self):
        """Close the SQLite connection. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        self.conn.close()
