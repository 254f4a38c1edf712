"""Trigger collector — the pipeline's single entry point into the event log.

Provides one ``record_*`` method per event type so pipeline code never
builds events (or reads the clock) itself.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe for concurrent use from overlapping triggers.

"""

from __future__ import annotations

from typing import TYPE_CHECKING

from nudge.observability.events import (
    IndexUpdated,
    RevisionObserved,
    SyncFailed,
    SyncRequested,
    TriggerEvent,
    TriggerFailed,
    TriggerSkipped,
    now_ns,
)
from nudge.observability.log import EventLog

if TYPE_CHECKING:
    from nudge.sync.requester import SyncOutcome


class TriggerCollector:
    """Records trigger pipeline events into an ``EventLog``.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    def record(self, event: TriggerEvent) -> None:
        """Record a pre-built event."""
        self._log.append(event)

    # ----- Change detection -----

    def record_revision(
        self,
        source: str,
        kind: str,
        *,
        old_revision: str | None = None,
        new_revision: str | None = None,
        propagated: bool = False,
    ) -> None:
        """Record a change-filter decision."""
        self._log.append(
            RevisionObserved(
                source=source,
                kind=kind,
                old_revision=old_revision,
                new_revision=new_revision,
                propagated=propagated,
                timestamp_ns=now_ns(),
            )
        )

    def record_index_update(self, consumer: str, change: str, *, source: str = "") -> None:
        """Record a reverse index update."""
        self._log.append(
            IndexUpdated(
                consumer=consumer,
                change=change,  # type: ignore[arg-type]
                source=source,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Trigger outcomes -----

    def record_skip(self, source: str, kind: str, *, reason: str) -> None:
        """Record a trigger that ended without doing anything."""
        self._log.append(
            TriggerSkipped(
                source=source,
                kind=kind,
                reason=reason,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    def record_failure(self, source: str, kind: str, *, reason: str, error: str) -> None:
        """Record a trigger that aborted as a whole."""
        self._log.append(
            TriggerFailed(
                source=source,
                kind=kind,
                reason=reason,  # type: ignore[arg-type]
                error=error,
                timestamp_ns=now_ns(),
            )
        )

    def record_outcome(self, source: str, outcome: SyncOutcome) -> None:
        """Record the result of one Consumer's sync request."""
        if outcome.status == "requested":
            self._log.append(
                SyncRequested(
                    source=source,
                    consumer=str(outcome.key),
                    requested_at=outcome.requested_at or "",
                    attempts=outcome.attempts,
                    duration_ms=outcome.duration_ms,
                    timestamp_ns=now_ns(),
                )
            )
        else:
            self._log.append(
                SyncFailed(
                    source=source,
                    consumer=str(outcome.key),
                    status=outcome.status,
                    error=outcome.error or "",
                    timestamp_ns=now_ns(),
                )
            )
