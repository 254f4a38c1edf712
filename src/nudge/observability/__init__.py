"""Trigger observability — a structured record of every pipeline decision.

Records:
- **Change detection**: revisions observed and whether they propagated
- **Index maintenance**: Consumers added, moved, or removed
- **Triggers**: skips, aborts, per-Consumer sync results, stage timings

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from overlapping triggers.

Quick Start:
    >>> from nudge.observability import TriggerCollector, EventLog
    >>> log = EventLog()
    >>> collector = TriggerCollector(log)
    >>> # Pass collector to TriggerPipeline
    >>> # then: log.query(consumer="apps/app-c")

"""

from nudge.observability.collector import TriggerCollector
from nudge.observability.events import (
    IndexUpdated,
    RevisionObserved,
    SyncFailed,
    SyncRequested,
    TriggerEvent,
    TriggerFailed,
    TriggerProfile,
    TriggerSkipped,
    now_ns,
)
from nudge.observability.log import EventLog
from nudge.observability.profiler import TriggerProfiler, compute_aggregate_stats

__all__ = [
    "EventLog",
    "IndexUpdated",
    "RevisionObserved",
    "SyncFailed",
    "SyncRequested",
    "TriggerCollector",
    "TriggerEvent",
    "TriggerFailed",
    "TriggerProfile",
    "TriggerProfiler",
    "TriggerSkipped",
    "compute_aggregate_stats",
    "now_ns",
]
