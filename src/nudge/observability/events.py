"""Event model for trigger observability.

Every decision the pipeline makes is recorded as an event: which revisions
were seen, which triggers were skipped or failed, and what happened to each
Consumer.  Events are keyed by Source and Consumer identity (``namespace/name``
strings) so the log can answer "what happened to app-c?" as easily as "what
did repo-a trigger?".

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Change detection events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RevisionObserved:
    """A Source state was observed and run through the change filter.

    Attributes:
        source: Source identity (``namespace/name``).
        kind: Source kind.
        old_revision: Previously observed revision, if any.
        new_revision: Revision in the new state, if any.
        propagated: Whether the change filter let the event through.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    source: str
    kind: str
    old_revision: str | None
    new_revision: str | None
    propagated: bool
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class IndexUpdated:
    """The reverse index absorbed a Consumer change.

    Attributes:
        consumer: Consumer identity.
        change: Type of change applied.
        source: Source identity the Consumer is now indexed under ("" if none).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    consumer: str
    change: Literal["created", "modified", "deleted"]
    source: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Trigger events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TriggerSkipped:
    """A trigger ended before looking up dependents.

    Attributes:
        source: Source identity.
        kind: Source kind.
        reason: Why nothing was done.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    source: str
    kind: str
    reason: Literal["source_missing", "no_dependents"]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class TriggerFailed:
    """A trigger aborted as a whole.

    Attributes:
        source: Source identity.
        kind: Source kind.
        reason: Which stage failed.
        error: Error message.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    source: str
    kind: str
    reason: Literal["list", "cycle", "timeout"]
    error: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SyncRequested:
    """A Consumer was annotated with a sync request.

    Attributes:
        source: Source identity that triggered the request.
        consumer: Consumer identity.
        requested_at: Timestamp written to the annotation.
        attempts: Update attempts needed (>1 means conflicts were retried).
        duration_ms: Time spent on this Consumer.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    source: str
    consumer: str
    requested_at: str
    attempts: int
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SyncFailed:
    """A sync request for one Consumer did not go through.

    Attributes:
        source: Source identity that triggered the request.
        consumer: Consumer identity.
        status: ``missing`` if the Consumer vanished, else ``failed``.
        error: Error message.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    source: str
    consumer: str
    status: Literal["missing", "failed"]
    error: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class TriggerProfile:
    """End-to-end timing for one trigger, broken down by stage.

    Attributes:
        source: Source identity.
        consumers: Number of Consumers ordered.
        requested: Number of successful sync requests.
        failed: Number of Consumers whose request did not go through.
        lookup_ms: Time spent resolving dependents.
        sort_ms: Time spent ordering them.
        request_ms: Time spent issuing sync requests.
        total_ms: Total trigger time.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    source: str
    consumers: int
    requested: int
    failed: int
    lookup_ms: float
    sort_ms: float
    request_ms: float
    total_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type TriggerEvent = (
    RevisionObserved
    | IndexUpdated
    | TriggerSkipped
    | TriggerFailed
    | SyncRequested
    | SyncFailed
    | TriggerProfile
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
