"""Tests for nudge.sync.requester — annotate-and-update with conflict retry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

from nudge._errors import StoreError
from nudge.objects.model import ObjectKey
from nudge.objects.store import ManifestStore
from nudge.sync.requester import DEFAULT_ANNOTATION_KEY, SyncClock, SyncRequester
from nudge.sync.retry import Backoff

from .conftest import FakeStore, make_consumer, read_manifest, write_manifest

APP_A = ObjectKey("apps", "app-a")


def _fixed(*moments: datetime):
    values = iter(moments)
    return lambda: next(values)


def _no_sleep(_delay: float) -> None:
    pass


class RecordingClock(SyncClock):
    """SyncClock that remembers every timestamp it hands out."""

    def __init__(self) -> None:
        super().__init__()
        self.stamps: list[str] = []

    def now(self) -> str:
        stamp = super().now()
        self.stamps.append(stamp)
        return stamp


class TestSyncClock:
    """SyncClock — RFC 3339 UTC, strictly increasing."""

    def test_format(self) -> None:
        clock = SyncClock(_fixed(datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=UTC)))
        assert clock.now() == "2024-05-01T12:30:45.123456Z"

    def test_converts_to_utc(self) -> None:
        moment = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert SyncClock(_fixed(moment)).now() == "2024-05-01T12:00:00.000000Z"

    def test_stalled_clock_still_increases(self) -> None:
        moment = datetime(2024, 5, 1, tzinfo=UTC)
        clock = SyncClock(_fixed(moment, moment, moment - timedelta(seconds=1)))
        stamps = [clock.now() for _ in range(3)]
        assert stamps == [
            "2024-05-01T00:00:00.000000Z",
            "2024-05-01T00:00:00.000001Z",
            "2024-05-01T00:00:00.000002Z",
        ]

    def test_real_clock_monotonic(self) -> None:
        clock = SyncClock()
        stamps = [clock.now() for _ in range(50)]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 50


class TestRequestSync:
    """SyncRequester.request_sync outcomes."""

    def test_requested(self) -> None:
        consumer = make_consumer("app-a")
        store = FakeStore(consumers=[consumer])
        requester = SyncRequester(store, sleep=_no_sleep)

        outcome = requester.request_sync(consumer)

        assert outcome.ok
        assert outcome.status == "requested"
        assert outcome.attempts == 1
        assert outcome.requested_at is not None
        (updated,) = store.updates
        assert updated.annotations == {DEFAULT_ANNOTATION_KEY: outcome.requested_at}

    def test_null_api_group_written_as_empty(self) -> None:
        consumer = make_consumer("app-a", api_group=None)
        store = FakeStore(consumers=[consumer])
        SyncRequester(store, sleep=_no_sleep).request_sync(consumer)
        assert store.updates[0].source_ref.api_group == ""

    def test_custom_annotation_key(self) -> None:
        consumer = make_consumer("app-a")
        store = FakeStore(consumers=[consumer])
        SyncRequester(store, annotation_key="example.com/syncAt", sleep=_no_sleep).request_sync(
            consumer,
        )
        assert store.updates[0].annotations is not None
        assert "example.com/syncAt" in store.updates[0].annotations

    def test_single_conflict_then_success(self) -> None:
        consumer = make_consumer("app-a")
        store = FakeStore(consumers=[consumer])
        store.conflicts[APP_A] = 1
        clock = RecordingClock()
        sleeps: list[float] = []
        requester = SyncRequester(store, clock=clock, sleep=sleeps.append)

        outcome = requester.request_sync(consumer)

        assert outcome.status == "requested"
        assert outcome.attempts == 2
        assert len(sleeps) == 1
        assert len(clock.stamps) == 2
        assert outcome.requested_at == clock.stamps[-1]
        assert outcome.requested_at > clock.stamps[0]
        # The retry worked from the re-read object, not the stale snapshot.
        assert store.updates[0].resource_version == "2"

    def test_conflicts_exhaust_retries(self) -> None:
        consumer = make_consumer("app-a")
        store = FakeStore(consumers=[consumer])
        store.conflicts[APP_A] = 10
        requester = SyncRequester(store, backoff=Backoff(steps=3), sleep=_no_sleep)

        outcome = requester.request_sync(consumer)

        assert outcome.status == "failed"
        assert outcome.error is not None
        assert "3 attempt" in outcome.error
        assert store.updates == []

    def test_missing_consumer(self) -> None:
        consumer = make_consumer("app-a")
        store = FakeStore(consumers=[consumer])
        store.missing.add(APP_A)

        outcome = SyncRequester(store, sleep=_no_sleep).request_sync(consumer)

        assert outcome.status == "missing"
        assert not outcome.ok
        assert outcome.requested_at is None

    def test_store_error_is_failed(self) -> None:
        consumer = make_consumer("app-a")
        store = FakeStore(consumers=[consumer])

        def broken(_consumer: object) -> None:
            raise StoreError("disk full")

        store.update_consumer = broken  # type: ignore[method-assign]
        outcome = SyncRequester(store, sleep=_no_sleep).request_sync(consumer)

        assert outcome.status == "failed"
        assert outcome.error == "disk full"


class TestRequestSyncOnManifests:
    """SyncRequester against the manifest store."""

    def test_annotation_written_to_disk(self, store: ManifestStore, manifests: Path) -> None:
        requester = SyncRequester(store, sleep=_no_sleep)
        outcome = requester.request_sync(store.get_consumer(APP_A))

        doc = read_manifest(manifests / "apps" / "app-a.yaml")
        assert doc["metadata"]["annotations"][DEFAULT_ANNOTATION_KEY] == outcome.requested_at
        assert doc["spec"]["sourceRef"]["apiGroup"] == ""

    def test_stale_snapshot_is_refetched(self, store: ManifestStore, manifests: Path) -> None:
        stale = store.get_consumer(APP_A)
        store.update_consumer(stale.with_sync_request("team", "web"))

        outcome = SyncRequester(store, sleep=_no_sleep).request_sync(stale)

        assert outcome.status == "requested"
        assert outcome.attempts == 2
        doc = read_manifest(manifests / "apps" / "app-a.yaml")
        assert doc["metadata"]["annotations"]["team"] == "web"
        assert doc["metadata"]["resourceVersion"] == "3"

    def test_operator_edit_survives_retry(self, store: ManifestStore, manifests: Path) -> None:
        snapshot = store.get_consumer(APP_A)
        path = manifests / "apps" / "app-a.yaml"
        edited = read_manifest(path)
        edited["spec"]["path"] = "./edited-by-operator"
        write_manifest(manifests, "apps/app-a.yaml", edited)

        outcome = SyncRequester(store, sleep=_no_sleep).request_sync(snapshot)

        assert outcome.status == "requested"
        assert outcome.attempts == 2
        doc = read_manifest(path)
        assert doc["spec"]["path"] == "./edited-by-operator"
        assert doc["metadata"]["annotations"][DEFAULT_ANNOTATION_KEY] == outcome.requested_at
