"""ContentStore unit tests."""

import pytest

from sprig.cas import Blob, ContentStore, ContentStoreLimitError, ObjectType
from sprig.errors import NotFoundError


@pytest.fixture
def store(tmp_path):
    s = ContentStore(tmp_path / "test.db")
    yield s
    s.close()


class TestPutGet:
    def test_get_returns_put_content(self, store):
        h = store.put(b"hello world", "hello.txt")
        assert store.get(h) == b"hello world"

    def test_put_is_idempotent(self, store):
        h1 = store.put(b"same", "a.txt")
        h2 = store.put(b"same", "a.txt")
        assert h1 == h2
        assert store.stats()["by_type"]["blob"]["count"] == 1

    def test_name_is_part_of_identity(self, store):
        assert store.put(b"same", "a.txt") != store.put(b"same", "b.txt")

    def test_different_content_different_hash(self, store):
        assert store.put(b"content A", "f") != store.put(b"content B", "f")

    def test_empty_and_binary_content(self, store):
        data = b"\x00\x01\x02\xff"
        assert store.get(store.put(data, "data.bin")) == data
        assert store.get(store.put(b"", "empty")) == b""

    def test_get_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.get("0" * 64)

    def test_get_on_commit_object_raises(self, store):
        h = store.store(b'{"message":"x"}', ObjectType.COMMIT)
        with pytest.raises(NotFoundError):
            store.get(h)

    def test_blob_hash_matches_put_without_storing(self, store):
        predicted = store.blob_hash(b"data", "f.txt")
        assert not store.exists(predicted)
        assert store.put(b"data", "f.txt") == predicted


class TestBlobSerialization:
    def test_name_and_data_survive(self):
        blob = Blob("dir/file.txt", b"line\x00with nul")
        assert Blob.from_bytes(blob.to_bytes()) == blob


class TestHashContentTypePrefix:
    def test_same_bytes_different_type_different_hash(self, store):
        data = b"same bytes"
        assert store.hash_content(data, ObjectType.BLOB) != store.hash_content(
            data, ObjectType.COMMIT
        )

    def test_hash_is_deterministic(self, store, tmp_path):
        other = ContentStore(tmp_path / "other.db")
        try:
            assert store.put(b"x", "x") == other.put(b"x", "x")
        finally:
            other.close()


class TestLimits:
    def test_oversize_blob_rejected(self, tmp_path):
        s = ContentStore(tmp_path / "small.db", max_blob_size=10)
        try:
            with pytest.raises(ContentStoreLimitError):
                s.put(b"x" * 100, "big")
            s.put(b"x" * 5, "small")
        finally:
            s.close()


class TestBatch:
    def test_rollback_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.batch():
                h = store.put(b"doomed", "d")
                raise RuntimeError("boom")
        assert not store.exists(h)

    def test_commit_on_success(self, store):
        with store.batch():
            h = store.put(b"kept", "k")
        assert store.exists(h)


class TestIterObjects:
    def test_only_requested_type(self, store):
        store.put(b"blob", "b")
        c = store.store(b'{"message":"c"}', ObjectType.COMMIT)
        commits = list(store.iter_objects(ObjectType.COMMIT))
        assert [o.hash for o in commits] == [c]


class TestStats:
    def test_empty_store(self, store):
        stats = store.stats()
        assert stats["total_objects"] == 0
        assert stats["by_type"] == {}


class TestClose:
    def test_close_makes_connection_unusable(self, tmp_path):
        s = ContentStore(tmp_path / "close_test.db")
        s.put(b"data", "d")
        s.close()
        s.close()
        with pytest.raises(Exception):
            s.put(b"after close", "d")
