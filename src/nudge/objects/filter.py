"""Change filter — decides whether a Source update is worth propagating.

Sources change for many reasons: status conditions flip, labels are edited,
the object is re-applied unchanged.  Only a new revision means consumers
have something new to sync, so everything else is filtered out before the
reverse index is consulted.

The filter itself is a pure predicate.  ``SourceTracker`` remembers the
last revision seen per Source so that events carrying only the new state
(filesystem watches, list-based resyncs) can still be turned into an
``(old, new)`` comparison.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nudge.objects.model import ObjectKey, Source


def revision_changed(old: Source | None, new: Source | None) -> bool:
    """Return True iff the transition from *old* to *new* carries a new revision.

    Rules:
        1. No new state (a delete) never propagates.
        2. A new state without a revision has nothing to sync to.
        3. No previous state (a create, or first sighting) propagates.
        4. Otherwise propagate only when the revision tokens differ.

    Revision tokens are opaque; equality is the only operation applied.

    """
    if new is None or new.revision is None:
        return False
    if old is None:
        return True
    return old.revision != new.revision


class SourceTracker:
    """Last observed state per Source, keyed by ``(kind, key)``.

    Thread Safety:
        Protected by a ``threading.Lock``.  ``observe`` reads the previous
        state and stores the new one atomically, so two concurrent events
        for the same Source cannot both see the same "old" state.

    """

    __slots__ = ("_lock", "_seen")

    def __init__(self) -> None:
        self._seen: dict[tuple[str, ObjectKey], Source] = {}
        self._lock = threading.Lock()

    def seed(self, sources: Iterable[Source]) -> int:
        """Record initial states without reporting any change.

        Returns the number of Sources recorded.

        """
        with self._lock:
            count = 0
            for source in sources:
                self._seen[(source.kind, source.key)] = source
                count += 1
            return count

    def observe(self, new: Source) -> tuple[Source | None, bool]:
        """Record *new* and return ``(previous_state, should_propagate)``."""
        with self._lock:
            old = self._seen.get((new.kind, new.key))
            self._seen[(new.kind, new.key)] = new
        return old, revision_changed(old, new)

    def forget(self, kind: str, key: ObjectKey) -> Source | None:
        """Drop a deleted Source, returning its last known state."""
        with self._lock:
            return self._seen.pop((kind, key), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
