"""Event log — bounded trigger history with per-object views.

Keeps the last ``max_events`` events in arrival order.  Every event that
names a Source or a Consumer is also filed under that object, so
``query(source=...)`` and ``query(consumer=...)`` walk only that object's
history instead of the whole log.

Eviction is first-in first-out across the whole log.  The event being
evicted is always the oldest entry of every per-object history it was
filed under, so dropping it is one ``popleft`` per history.

Thread Safety:
    A single ``threading.Lock`` guards the log and both per-object views.

"""

import threading
from collections import deque
from collections.abc import Iterator
from itertools import islice

from nudge.observability.events import TriggerEvent

# object identity (``namespace/name``) -> its events, oldest first
type ObjectHistory = dict[str, deque[TriggerEvent]]


class EventLog:
    """Bounded event store queried by type, time, Source or Consumer.

    Args:
        max_events: Maximum number of events to retain; at least 1.

    """

    __slots__ = ("_by_consumer", "_by_source", "_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        if max_events < 1:
            msg = f"max_events must be at least 1, got {max_events}"
            raise ValueError(msg)
        self._max_events = max_events
        self._events: deque[TriggerEvent] = deque()
        self._by_source: ObjectHistory = {}
        self._by_consumer: ObjectHistory = {}
        self._lock = threading.Lock()

    @property
    def max_events(self) -> int:
        return self._max_events

    def append(self, event: TriggerEvent) -> None:
        """Record an event, evicting the oldest one when the log is full."""
        with self._lock:
            if len(self._events) >= self._max_events:
                self._evict(self._events.popleft())
            self._events.append(event)
            for view, key in self._filed_under(event):
                view.setdefault(key, deque()).append(event)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        source: str | None = None,
        consumer: str | None = None,
        limit: int = 100,
    ) -> list[TriggerEvent]:
        """Matching events, most recent first.

        A ``consumer`` filter reads that Consumer's history; otherwise a
        ``source`` filter reads that Source's history; otherwise the whole
        log is read.  Remaining filters are applied to each candidate.

        """
        with self._lock:
            if consumer is not None:
                candidates = self._by_consumer.get(consumer, ())
            elif source is not None:
                candidates = self._by_source.get(source, ())
            else:
                candidates = self._events

            results: list[TriggerEvent] = []
            for event in reversed(candidates):
                if len(results) >= limit:
                    break
                if event_type is not None and not isinstance(event, event_type):
                    continue
                if event.timestamp_ns < since_ns:
                    continue
                if source is not None and getattr(event, "source", None) != source:
                    continue
                results.append(event)
            return results

    def recent(self, n: int = 20) -> list[TriggerEvent]:
        """The *n* most recent events, oldest first."""
        with self._lock:
            newest = list(islice(reversed(self._events), max(n, 0)))
        newest.reverse()
        return newest

    def clear(self) -> int:
        """Drop every event and return how many there were."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
            self._by_source.clear()
            self._by_consumer.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    # ----- Internals (lock held) -----

    def _filed_under(self, event: TriggerEvent) -> Iterator[tuple[ObjectHistory, str]]:
        source = getattr(event, "source", "")
        if source:
            yield self._by_source, source
        consumer = getattr(event, "consumer", "")
        if consumer:
            yield self._by_consumer, consumer

    def _evict(self, oldest: TriggerEvent) -> None:
        for view, key in self._filed_under(oldest):
            history = view[key]
            history.popleft()
            if not history:
                del view[key]
