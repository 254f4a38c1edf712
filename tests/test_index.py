"""Tests for nudge.sync.index — the Source -> Consumers reverse index."""

from __future__ import annotations

import threading
from dataclasses import replace

import pytest

from nudge._errors import ConfigError, ListError
from nudge.objects.model import ObjectKey, SourceRef
from nudge.sync.index import ReverseIndex, source_index_key, validate_source_kinds

from .conftest import make_consumer

REPO_A = ObjectKey("flux-system", "repo-a")
REPO_B = ObjectKey("flux-system", "repo-b")


@pytest.fixture
def index() -> ReverseIndex:
    idx = ReverseIndex()
    idx.rebuild([
        make_consumer("app-a"),
        make_consumer("app-b"),
        make_consumer("app-c", depends_on=("app-b",)),
        make_consumer("other", source="repo-b"),
    ])
    return idx


class TestValidateSourceKinds:
    """validate_source_kinds — closed set of supported kinds."""

    def test_supported(self) -> None:
        assert validate_source_kinds(["GitRepository", "Bucket"]) == {"GitRepository", "Bucket"}

    def test_unsupported(self) -> None:
        with pytest.raises(ConfigError, match="OCIRepository"):
            validate_source_kinds(["GitRepository", "OCIRepository"])

    def test_constructor_validates(self) -> None:
        with pytest.raises(ConfigError):
            ReverseIndex(["Kustomization"])


class TestSourceIndexKey:
    """source_index_key — gated on the reference kind."""

    def test_watched_kind(self) -> None:
        key = source_index_key(make_consumer("app-a"), frozenset({"GitRepository"}))
        assert key == ("GitRepository", REPO_A)

    def test_unwatched_kind(self) -> None:
        consumer = replace(
            make_consumer("app-a"), source_ref=SourceRef(kind="Bucket", name="b"),
        )
        assert source_index_key(consumer, frozenset({"GitRepository"})) is None


class TestReverseIndexLookup:
    """ReverseIndex lookups after a rebuild."""

    def test_lookup(self, index: ReverseIndex) -> None:
        assert index.lookup("GitRepository", REPO_A) == frozenset({
            ObjectKey("apps", "app-a"), ObjectKey("apps", "app-b"), ObjectKey("apps", "app-c"),
        })

    def test_lookup_other_source(self, index: ReverseIndex) -> None:
        assert index.lookup("GitRepository", REPO_B) == frozenset({ObjectKey("apps", "other")})

    def test_lookup_unknown_source(self, index: ReverseIndex) -> None:
        assert index.lookup("GitRepository", ObjectKey("flux-system", "nope")) == frozenset()

    def test_lookup_is_kind_specific(self, index: ReverseIndex) -> None:
        assert index.lookup("Bucket", REPO_A) == frozenset()

    def test_consumers_returns_snapshots(self, index: ReverseIndex) -> None:
        consumers = index.consumers("GitRepository", REPO_A)
        assert sorted(c.key.name for c in consumers) == ["app-a", "app-b", "app-c"]

    def test_lookup_before_rebuild(self) -> None:
        idx = ReverseIndex()
        assert idx.ready is False
        with pytest.raises(ListError):
            idx.lookup("GitRepository", REPO_A)
        with pytest.raises(ListError):
            idx.consumers("GitRepository", REPO_A)

    def test_rebuild_counts_indexed(self) -> None:
        unwatched = replace(make_consumer("x"), source_ref=SourceRef(kind="Bucket", name="b"))
        idx = ReverseIndex()
        assert idx.rebuild([make_consumer("app-a"), unwatched]) == 1
        assert len(idx) == 2
        assert idx.stats() == {"consumers": 2, "indexed": 1, "sources": 1}

    def test_rebuild_duplicate_key_last_wins(self) -> None:
        idx = ReverseIndex()
        idx.rebuild([make_consumer("app-a"), make_consumer("app-a", source="repo-b")])
        assert idx.lookup("GitRepository", REPO_A) == frozenset()
        assert idx.lookup("GitRepository", REPO_B) == frozenset({ObjectKey("apps", "app-a")})


class TestReverseIndexUpdates:
    """ReverseIndex upsert/remove keep entries current."""

    def test_upsert_new_consumer(self, index: ReverseIndex) -> None:
        index.upsert(make_consumer("app-d"))
        assert ObjectKey("apps", "app-d") in index.lookup("GitRepository", REPO_A)

    def test_upsert_replaces_snapshot(self, index: ReverseIndex) -> None:
        index.upsert(make_consumer("app-a", resource_version="9"))
        snapshot = index.get(ObjectKey("apps", "app-a"))
        assert snapshot is not None
        assert snapshot.resource_version == "9"

    def test_move_between_sources(self, index: ReverseIndex) -> None:
        index.upsert(make_consumer("app-a", source="repo-b"))
        assert ObjectKey("apps", "app-a") not in index.lookup("GitRepository", REPO_A)
        assert ObjectKey("apps", "app-a") in index.lookup("GitRepository", REPO_B)

    def test_move_to_unwatched_kind(self, index: ReverseIndex) -> None:
        moved = replace(make_consumer("app-a"), source_ref=SourceRef(kind="Bucket", name="b"))
        index.upsert(moved)
        assert ObjectKey("apps", "app-a") not in index.lookup("GitRepository", REPO_A)
        assert index.get(ObjectKey("apps", "app-a")) == moved

    def test_remove(self, index: ReverseIndex) -> None:
        assert index.remove(ObjectKey("apps", "other")) is True
        assert index.lookup("GitRepository", REPO_B) == frozenset()
        assert index.stats()["sources"] == 1

    def test_remove_unknown(self, index: ReverseIndex) -> None:
        assert index.remove(ObjectKey("apps", "nope")) is False

    def test_lookup_result_is_a_copy(self, index: ReverseIndex) -> None:
        before = index.lookup("GitRepository", REPO_A)
        index.remove(ObjectKey("apps", "app-a"))
        assert ObjectKey("apps", "app-a") in before

    def test_concurrent_moves_leave_one_entry(self, index: ReverseIndex) -> None:
        key = ObjectKey("apps", "app-a")

        def mover(source: str) -> None:
            for _ in range(200):
                index.upsert(make_consumer("app-a", source=source))

        threads = [
            threading.Thread(target=mover, args=(source,))
            for source in ("repo-a", "repo-b", "repo-a", "repo-b")
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        total = sum(key in index.lookup("GitRepository", s) for s in (REPO_A, REPO_B))
        assert total == 1
        assert index.stats()["indexed"] == 4
