"""Commit graph and ancestry tests."""

import pytest

from sprig.cas import ContentStore
from sprig.commits import EPOCH, INITIAL_MESSAGE, Commit, CommitGraph
from sprig.errors import NotFoundError, ValidationError


@pytest.fixture
def store(tmp_path):
    s = ContentStore(tmp_path / "graph.db")
    yield s
    s.close()


@pytest.fixture
def graph(store):
    ticks = iter(range(1000, 2000))
    return CommitGraph(store, clock=lambda: float(next(ticks)))


@pytest.fixture
def root(graph):
    h, _ = graph.create_commit(INITIAL_MESSAGE, parent=None)
    return h


def _chain(graph, parent, *messages):
    hashes = []
    for m in messages:
        parent, _ = graph.create_commit(m, parent=parent, files={m: m})
        hashes.append(parent)
    return hashes


class TestCreateCommit:
    def test_empty_message_rejected(self, graph, root):
        with pytest.raises(ValidationError, match="commit message"):
            graph.create_commit("", parent=root)

    def test_root_uses_epoch(self, graph):
        _, commit = graph.create_commit(INITIAL_MESSAGE, parent=None, timestamp=12345.0)
        assert commit.timestamp == EPOCH

    def test_root_hash_is_stable(self, tmp_path, root):
        other = ContentStore(tmp_path / "other.db")
        try:
            h, _ = CommitGraph(other).create_commit(INITIAL_MESSAGE, parent=None)
        finally:
            other.close()
        assert h == root

    def test_unknown_parent_rejected(self, graph):
        with pytest.raises(NotFoundError):
            graph.create_commit("orphan", parent="f" * 64)

    def test_clock_supplies_timestamp(self, graph, root):
        _, commit = graph.create_commit("second", parent=root)
        assert commit.timestamp == 1000.0

    def test_hash_depends_on_files(self, graph, root):
        a, _ = graph.create_commit("m", parent=root, files={"a": "1"}, timestamp=5.0)
        b, _ = graph.create_commit("m", parent=root, files={"a": "2"}, timestamp=5.0)
        assert a != b


class TestSerialization:
    def test_file_order_does_not_change_bytes(self):
        a = Commit("m", 1.0, files={"b": "2", "a": "1"}, parent="p")
        b = Commit("m", 1.0, files={"a": "1", "b": "2"}, parent="p")
        assert a.to_bytes() == b.to_bytes()

    def test_from_bytes_restores_commit(self):
        c = Commit("m", 1.5, files={"a": "1"}, parent="p", merge_parent="q")
        assert Commit.from_bytes(c.to_bytes()) == c


class TestPersistence:
    def test_pending_commits_invisible_until_persist(self, store, graph, root):
        assert len(CommitGraph.load(store)) == 0
        graph.persist()
        assert root in CommitGraph.load(store)

    def test_discard_pending(self, graph, root):
        graph.discard_pending()
        assert root not in graph


class TestAncestry:
    def test_commit_is_its_own_ancestor(self, graph, root):
        (a,) = _chain(graph, root, "a")
        assert a in graph.ancestry(a)
        assert root in graph.ancestry(root)

    def test_ancestry_is_transitive(self, graph, root):
        a, b, c = _chain(graph, root, "a", "b", "c")
        assert graph.ancestry(a) <= graph.ancestry(c)
        assert graph.ancestry(b) <= graph.ancestry(c)
        assert graph.ancestry(c) == {root, a, b, c}

    def test_ancestry_follows_merge_parents(self, graph, root):
        (left,) = _chain(graph, root, "left")
        right1, right2 = _chain(graph, root, "r1", "r2")
        merge, _ = graph.create_commit("merge", parent=left, merge_parent=right2)
        assert {right1, right2, left, root} <= graph.ancestry(merge)

    def test_breadth_first_parent_before_merge_parent(self, graph, root):
        (left,) = _chain(graph, root, "left")
        (right,) = _chain(graph, root, "right")
        merge, _ = graph.create_commit("merge", parent=left, merge_parent=right)
        assert graph.ancestry_order(merge) == [merge, left, right, root]

    def test_unknown_commit_raises(self, graph):
        with pytest.raises(NotFoundError):
            graph.ancestry("nope")


class TestFindSplit:
    def test_divergent_branches(self, graph, root):
        (base,) = _chain(graph, root, "base")
        (a,) = _chain(graph, base, "a")
        (b,) = _chain(graph, base, "b")
        assert graph.find_split(a, b) == base
        assert graph.find_split(b, a) == base

    def test_linear_history(self, graph, root):
        a, b = _chain(graph, root, "a", "b")
        assert graph.find_split(b, a) == a
        assert graph.find_split(a, b) == a

    def test_criss_cross_picks_first_in_breadth_first_order(self, graph, root):
        # x1 and y1 fork from root; mx merges y1 into x, my merges x1 into y.
        # Both x1 and y1 are common ancestors of mx and my; walking mx
        # breadth-first visits its primary parent x1 first.
        (x1,) = _chain(graph, root, "x1")
        (y1,) = _chain(graph, root, "y1")
        mx, _ = graph.create_commit("mx", parent=x1, merge_parent=y1, files={"m": "x"})
        my, _ = graph.create_commit("my", parent=y1, merge_parent=x1, files={"m": "y"})
        assert graph.find_split(mx, my) == x1
        assert graph.find_split(my, mx) == y1


class TestResolve:
    def test_full_id(self, graph, root):
        assert graph.resolve(root) == root

    def test_unique_prefix(self, graph, root):
        assert graph.resolve(root[:8]) == root

    def test_unknown_prefix(self, graph, root):
        prefix = "0000" if not root.startswith("0000") else "ffff"
        with pytest.raises(NotFoundError, match="No commit with that id exists"):
            graph.resolve(prefix)

    def test_too_short(self, graph, root):
        with pytest.raises(ValidationError, match="too short"):
            graph.resolve(root[:2])


class TestFindByMessage:
    def test_finds_all_matches(self, graph, root):
        a, _ = graph.create_commit("same", parent=root, files={"a": "1"})
        b, _ = graph.create_commit("same", parent=a, files={"a": "2"})
        assert sorted(graph.find_by_message("same")) == sorted([a, b])

    def test_no_match(self, graph, root):
        with pytest.raises(NotFoundError, match="Found no commit"):
            graph.find_by_message("missing")


class TestFirstParentChain:
    def test_newest_first_to_root(self, graph, root):
        a, b = _chain(graph, root, "a", "b")
        assert [h for h, _ in graph.first_parent_chain(b)] == [b, a, root]
