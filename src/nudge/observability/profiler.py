"""Trigger profiler — measures end-to-end trigger latency.

Provides a lightweight profiler that records per-stage timing for each
trigger and emits ``TriggerProfile`` events to the ``EventLog``.

Thread Safety:
    Each trigger creates its own profiler (single-writer).  Aggregate
    queries are protected by the underlying ``EventLog`` lock.

"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nudge.observability.events import TriggerProfile, now_ns

if TYPE_CHECKING:
    from nudge.observability.log import EventLog

STAGES = ("lookup", "sort", "request")


@dataclass(slots=True)
class _Timer:
    """Accumulates timing for a named pipeline stage."""

    name: str
    _start: float = 0.0
    elapsed_ms: float = 0.0

    def start(self) -> None:
        self._start = time.perf_counter()

    def stop(self) -> None:
        if self._start > 0:
            self.elapsed_ms = (time.perf_counter() - self._start) * 1000
            self._start = 0.0


class TriggerProfiler:
    """Records per-stage timing for a single trigger.

    Usage::

        profiler = TriggerProfiler(event_log)

        profiler.begin("flux-system/repo-a")
        profiler.start("lookup")
        # ... resolve dependents ...
        profiler.stop("lookup")
        profiler.start("sort")
        # ... order them ...
        profiler.stop("sort")
        profiler.finish(consumers=3, requested=3)

    After ``finish()``, a ``TriggerProfile`` event is appended to the log
    and a one-line summary is printed to stderr.

    """

    __slots__ = ("_log", "_source", "_t0", "_timers", "_verbose")

    def __init__(self, log: EventLog, *, verbose: bool = True) -> None:
        self._log = log
        self._verbose = verbose
        self._source = ""
        self._t0 = 0.0
        self._timers: dict[str, _Timer] = {name: _Timer(name=name) for name in STAGES}

    def begin(self, source: str) -> None:
        """Start profiling a new trigger."""
        self._source = source
        self._t0 = time.perf_counter()
        for timer in self._timers.values():
            timer.elapsed_ms = 0.0

    def start(self, stage: str) -> None:
        """Start timing a named stage."""
        timer = self._timers.get(stage)
        if timer is not None:
            timer.start()

    def stop(self, stage: str) -> None:
        """Stop timing a named stage."""
        timer = self._timers.get(stage)
        if timer is not None:
            timer.stop()

    def finish(self, *, consumers: int = 0, requested: int = 0, failed: int = 0) -> TriggerProfile:
        """Finish profiling and emit the ``TriggerProfile`` event.

        Returns the profile for testing / inspection.

        """
        total_ms = (time.perf_counter() - self._t0) * 1000 if self._t0 > 0 else 0.0

        profile = TriggerProfile(
            source=self._source,
            consumers=consumers,
            requested=requested,
            failed=failed,
            lookup_ms=self._timers["lookup"].elapsed_ms,
            sort_ms=self._timers["sort"].elapsed_ms,
            request_ms=self._timers["request"].elapsed_ms,
            total_ms=total_ms,
            timestamp_ns=now_ns(),
        )

        self._log.append(profile)

        if self._verbose:
            self._print_summary(profile)

        return profile

    def _print_summary(self, p: TriggerProfile) -> None:
        """Print a one-line timing summary to stderr."""
        label = "consumer" if p.consumers == 1 else "consumers"
        failed = f", {p.failed} failed" if p.failed else ""
        stages = (
            f"lookup: {p.lookup_ms:.0f}ms, "
            f"sort: {p.sort_ms:.0f}ms, "
            f"request: {p.request_ms:.0f}ms"
        )
        print(
            f"  [{p.total_ms:.0f}ms] {p.source} -> "
            f"{p.requested}/{p.consumers} {label} requested{failed} ({stages})",
            file=sys.stderr,
        )


def compute_aggregate_stats(
    log: EventLog,
    *,
    limit: int = 100,
) -> dict:
    """Compute aggregate latency statistics from recent ``TriggerProfile`` events.

    Returns a dict with p50, p95, p99, and per-stage averages.

    """
    profiles = log.query(event_type=TriggerProfile, limit=limit)
    if not profiles:
        return {"count": 0}

    totals = sorted(p.total_ms for p in profiles)
    count = len(totals)

    def percentile(data: list[float], pct: float) -> float:
        idx = int(len(data) * pct / 100)
        return data[min(idx, len(data) - 1)]

    return {
        "count": count,
        "total_ms": {
            "p50": round(percentile(totals, 50), 1),
            "p95": round(percentile(totals, 95), 1),
            "p99": round(percentile(totals, 99), 1),
            "min": round(totals[0], 1),
            "max": round(totals[-1], 1),
        },
        "avg_by_stage_ms": {
            "lookup": round(sum(p.lookup_ms for p in profiles) / count, 1),
            "sort": round(sum(p.sort_ms for p in profiles) / count, 1),
            "request": round(sum(p.request_ms for p in profiles) / count, 1),
        },
        "consumers_requested": sum(p.requested for p in profiles),
        "consumers_failed": sum(p.failed for p in profiles),
    }
