"""Trigger pipeline coordinator — connects Source changes to sync requests.

Orchestrates the full propagation flow:
    1. A Source event arrives (ObjectEvent)
    2. The change filter drops anything that is not a new revision
    3. The Source is re-read; if it vanished meanwhile, the trigger is skipped
    4. The reverse index yields every Consumer referencing the Source
    5. The dependency sorter orders them (a cycle aborts the trigger)
    6. Each Consumer, in order, gets a sync request; failures are recorded
       and the loop moves on

Steps 3-6 run under one wall-clock budget.  When it runs out, the step in
flight is abandoned and the trigger reports a timeout; sync requests that
were already recorded stay recorded.

Consumer events go straight to the reverse index so it always reflects the
latest observed Consumers.
"""

from __future__ import annotations

import asyncio
import sys
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nudge._errors import (
    CycleError,
    ListError,
    NotFoundError,
    NudgeError,
    StoreError,
    TriggerTimeoutError,
)
from nudge.objects.filter import SourceTracker, revision_changed
from nudge.objects.model import Consumer, Source
from nudge.observability.profiler import TriggerProfiler
from nudge.sync.requester import SyncOutcome
from nudge.sync.sorter import dependency_sort

if TYPE_CHECKING:
    from nudge._types import TriggerStatus
    from nudge.objects.model import ObjectKey
    from nudge.objects.store import ObjectStore
    from nudge.objects.watcher import ObjectEvent
    from nudge.observability.collector import TriggerCollector
    from nudge.sync.index import ReverseIndex
    from nudge.sync.requester import SyncRequester

DEFAULT_TIMEOUT = 15.0


@dataclass(slots=True)
class TriggerResult:
    """What one trigger did.

    Attributes:
        kind: Source kind.
        source: Source identity.
        status: ``completed`` once every Consumer was attempted (individual
            failures included), ``skipped`` if the Source vanished,
            ``failed`` on a lookup or ordering error, ``timeout`` when the
            budget ran out.
        order: Consumer keys in the order requests were issued.
        outcomes: One outcome per attempted Consumer, in order.
        error: Error message for ``failed`` and ``timeout``.

    """

    kind: str
    source: ObjectKey
    status: TriggerStatus = "completed"
    order: list[ObjectKey] = field(default_factory=list)
    outcomes: list[SyncOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def requested(self) -> list[ObjectKey]:
        return [o.key for o in self.outcomes if o.status == "requested"]

    @property
    def failures(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if o.status != "requested"]


class TriggerPipeline:
    """Coordinates change detection, lookup, ordering, and sync requests.

    Args:
        store: Object store for Source re-reads (and the requester's updates).
        index: Reverse index of Consumers by Source.
        requester: Issues the per-Consumer sync requests.
        collector: Optional event collector.
        tracker: Last observed Source states; created if not given.
        timeout: Wall-clock budget per trigger, in seconds.
        verbose: Print per-trigger summaries to stderr.

    """

    def __init__(
        self,
        store: ObjectStore,
        index: ReverseIndex,
        requester: SyncRequester,
        *,
        collector: TriggerCollector | None = None,
        tracker: SourceTracker | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verbose: bool = True,
    ) -> None:
        self._store = store
        self._index = index
        self._requester = requester
        self._collector = collector
        self._tracker = tracker if tracker is not None else SourceTracker()
        self._timeout = timeout
        self._verbose = verbose

    @property
    def index(self) -> ReverseIndex:
        return self._index

    @property
    def tracker(self) -> SourceTracker:
        return self._tracker

    # ----- Startup -----

    async def seed(self) -> tuple[int, int]:
        """Build the reverse index and record current Source revisions.

        Called at startup so the first edit is compared against the initial
        state instead of triggering every Source.

        Returns:
            ``(sources, consumers)`` counts.

        Raises:
            ListError: If the store cannot list its objects.

        """
        try:
            sources, consumers = await asyncio.to_thread(self._store.list_objects)
        except StoreError as exc:
            msg = f"unable to list objects: {exc}"
            raise ListError(msg) from exc
        self._index.rebuild(consumers)
        seeded = self._tracker.seed(s for s in sources if s.kind in self._index.source_kinds)
        return seeded, len(consumers)

    # ----- Event handling -----

    async def handle_event(self, event: ObjectEvent) -> TriggerResult | None:
        """Process a single object event.

        Consumer events update the index.  Source events go through the
        change filter and, when it passes, run a trigger.

        Returns the trigger result, or None when no trigger ran.

        """
        if event.role == "consumer":
            self._handle_consumer_event(event)
            return None
        return await self._handle_source_event(event)

    def _handle_consumer_event(self, event: ObjectEvent) -> None:
        if event.change == "deleted" or not isinstance(event.obj, Consumer):
            self._index.remove(event.key)
            source = ""
        else:
            self._index.upsert(event.obj)
            source = (
                str(event.obj.source_key)
                if event.obj.source_ref.kind in self._index.source_kinds
                else ""
            )
        if self._collector is not None:
            self._collector.record_index_update(str(event.key), event.change, source=source)

    async def _handle_source_event(self, event: ObjectEvent) -> TriggerResult | None:
        if event.kind not in self._index.source_kinds:
            return None

        if event.change == "deleted" or not isinstance(event.obj, Source):
            old = self._tracker.forget(event.kind, event.key)
            propagate = revision_changed(old, None)
            new_revision = None
        else:
            old, propagate = self._tracker.observe(event.obj)
            new_revision = event.obj.revision

        if self._collector is not None:
            self._collector.record_revision(
                str(event.key), event.kind,
                old_revision=old.revision if old is not None else None,
                new_revision=new_revision,
                propagated=propagate,
            )
        if not propagate:
            return None

        if self._verbose:
            print(
                f"  New revision {new_revision} detected for {event.kind} {event.key}",
                file=sys.stderr,
            )
        return await self.trigger(event.kind, event.key)

    # ----- Trigger -----

    async def trigger(self, kind: str, source: ObjectKey) -> TriggerResult:
        """Request a sync for every Consumer of a Source, in dependency order.

        Never raises for pipeline failures; the result says what happened.

        """
        result = TriggerResult(kind=kind, source=source)
        try:
            async with asyncio.timeout(self._timeout):
                await self._run(result)
        except TimeoutError:
            err = TriggerTimeoutError(
                f"trigger for {kind} {source} exceeded {self._timeout:g}s"
            )
            self._fail(result, "timeout", "timeout", err)
        return result

    async def _run(self, result: TriggerResult) -> None:
        kind, source = result.kind, result.source
        label = str(source)

        profiler = (
            TriggerProfiler(self._collector.log, verbose=self._verbose)
            if self._collector is not None
            else None
        )
        if profiler is not None:
            profiler.begin(label)

        try:
            await asyncio.to_thread(self._store.get_source, kind, source)
        except NotFoundError:
            result.status = "skipped"
            if self._collector is not None:
                self._collector.record_skip(label, kind, reason="source_missing")
            return
        except NudgeError as exc:
            self._fail(result, "failed", "list", exc)
            return

        if profiler is not None:
            profiler.start("lookup")
        try:
            consumers = self._index.consumers(kind, source)
        except ListError as exc:
            self._fail(result, "failed", "list", exc)
            return
        finally:
            if profiler is not None:
                profiler.stop("lookup")

        if not consumers:
            if self._collector is not None:
                self._collector.record_skip(label, kind, reason="no_dependents")
            return

        if profiler is not None:
            profiler.start("sort")
        try:
            ordered = dependency_sort(consumers)
        except CycleError as exc:
            self._fail(result, "failed", "cycle", exc)
            return
        finally:
            if profiler is not None:
                profiler.stop("sort")

        result.order = [c.key for c in ordered]

        if profiler is not None:
            profiler.start("request")
        for consumer in ordered:
            outcome = await self._request(consumer)
            result.outcomes.append(outcome)
            self._report(label, outcome)
        if profiler is not None:
            profiler.stop("request")
            profiler.finish(
                consumers=len(ordered),
                requested=len(result.requested),
                failed=len(result.failures),
            )

    async def _request(self, consumer: Consumer) -> SyncOutcome:
        """Request one sync; any error becomes a failed outcome."""
        t0 = time.perf_counter()
        try:
            return await asyncio.to_thread(self._requester.request_sync, consumer)
        except Exception as exc:
            return SyncOutcome(
                key=consumer.key, status="failed", error=str(exc),
                duration_ms=(time.perf_counter() - t0) * 1000,
            )

    def _report(self, source: str, outcome: SyncOutcome) -> None:
        if self._collector is not None:
            self._collector.record_outcome(source, outcome)
        if not self._verbose:
            return
        if outcome.status == "requested":
            print(f"  Requested immediate sync for {outcome.key}", file=sys.stderr)
        else:
            print(
                f"  Unable to annotate {outcome.key} ({outcome.status}): {outcome.error}",
                file=sys.stderr,
            )

    def _fail(
        self, result: TriggerResult, status: TriggerStatus, reason: str, exc: BaseException,
    ) -> None:
        result.status = status
        result.error = str(exc)
        if self._collector is not None:
            self._collector.record_failure(
                str(result.source), result.kind, reason=reason, error=str(exc),
            )
        print(
            f"  Trigger for {result.kind} {result.source} failed ({reason}): {exc}",
            file=sys.stderr,
        )
