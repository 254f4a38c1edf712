"""Sync requester — records "sync requested at T" on a Consumer.

There is no separate sync API: writing the request annotation is what the
external reconciler watches for.  The write goes through the store's
optimistic-concurrency check, so a Consumer modified concurrently is
re-read and re-annotated instead of being overwritten.

Every request also makes sure the Consumer's source reference carries an
explicit API group (empty string when unset); the storage layer rejects a
null there.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from nudge._errors import NotFoundError, NudgeError
from nudge.sync.retry import DEFAULT_BACKOFF, Attempt, Backoff, retry_on_conflict

if TYPE_CHECKING:
    from collections.abc import Callable

    from nudge._types import Sleeper, SyncStatus
    from nudge.objects.model import Consumer, ObjectKey
    from nudge.objects.store import ObjectStore

DEFAULT_ANNOTATION_KEY = "kustomize.fluxcd.io/syncAt"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncClock:
    """Produces strictly increasing RFC 3339 UTC timestamps.

    Timestamps have a fixed width (microsecond precision, ``Z`` suffix), so
    string comparison agrees with time order.  If the wall clock stalls or
    steps backwards, the next value is one microsecond after the previous.

    """

    __slots__ = ("_last", "_lock", "_source")

    def __init__(self, source: Callable[[], datetime] = _utcnow) -> None:
        self._source = source
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> str:
        with self._lock:
            current = self._source().astimezone(UTC)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
        return current.strftime(_TIMESTAMP_FORMAT)


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    """Result of requesting a sync for one Consumer.

    Attributes:
        key: The Consumer's identity.
        status: ``requested`` on success, ``missing`` if the Consumer no
            longer exists, ``failed`` for any other error.
        attempts: Update attempts made (0 when unknown).
        requested_at: The timestamp written, on success.
        error: Error message, when not requested.
        duration_ms: Time spent on this Consumer.

    """

    key: ObjectKey
    status: SyncStatus
    attempts: int = 0
    requested_at: str | None = None
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "requested"


class SyncRequester:
    """Annotates Consumers with a sync request, retrying on conflicts.

    Args:
        store: Object store used for re-reads and updates.
        annotation_key: Annotation set to the request timestamp.
        backoff: Retry policy for conflicting updates.
        clock: Timestamp source.
        sleep: Sleep function used between retries.

    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        annotation_key: str = DEFAULT_ANNOTATION_KEY,
        backoff: Backoff = DEFAULT_BACKOFF,
        clock: SyncClock | None = None,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._store = store
        self._annotation_key = annotation_key
        self._backoff = backoff
        self._clock = clock if clock is not None else SyncClock()
        self._sleep = sleep

    @property
    def annotation_key(self) -> str:
        return self._annotation_key

    def annotate(self, attempt: Attempt[Consumer]) -> Consumer:
        """Apply the sync request to the attempt's snapshot and store it."""
        updated = attempt.snapshot.with_sync_request(self._annotation_key, self._clock.now())
        return self._store.update_consumer(updated)

    def request_sync(self, consumer: Consumer) -> SyncOutcome:
        """Record a sync request on *consumer*.

        Never raises for store failures: the outcome says what happened, so
        a batch of requests can carry on past one bad Consumer.

        """
        t0 = time.perf_counter()
        key = consumer.key
        try:
            stored, attempts = retry_on_conflict(
                self.annotate,
                consumer,
                lambda: self._store.get_consumer(key),
                self._backoff,
                sleep=self._sleep,
            )
        except NotFoundError as exc:
            return SyncOutcome(
                key=key, status="missing", error=str(exc),
                duration_ms=(time.perf_counter() - t0) * 1000,
            )
        except NudgeError as exc:
            return SyncOutcome(
                key=key, status="failed", error=str(exc),
                duration_ms=(time.perf_counter() - t0) * 1000,
            )

        return SyncOutcome(
            key=key,
            status="requested",
            attempts=attempts,
            requested_at=(stored.annotations or {}).get(self._annotation_key),
            duration_ms=(time.perf_counter() - t0) * 1000,
        )
