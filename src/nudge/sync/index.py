"""Reverse index — which Consumers reference a given Source.

Answers the question at the heart of every trigger: "Source S has a new
revision, who builds from it?"  Built from a full Consumer listing at
startup and kept current from Consumer create/update/delete events, so a
lookup never touches the store.

Index membership is gated on the Consumer's source reference kind: only
references to a watched Source kind are indexed.  Kinds are checked against
a small closed set rather than dispatched on.

Thread Safety:
    All state is guarded by one ``threading.Lock``.  An upsert removes the
    Consumer from its old Source entry and adds it to the new one inside the
    same critical section, so no reader can see it under both Sources or
    under its old one after the move.  Lookups return frozen copies.

"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from nudge._errors import ConfigError, ListError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nudge.objects.model import Consumer, ObjectKey

SUPPORTED_SOURCE_KINDS = frozenset({"GitRepository", "Bucket", "HelmRepository"})

# (source kind, source key)
type SourceIndexKey = tuple[str, ObjectKey]


def validate_source_kinds(kinds: Iterable[str]) -> frozenset[str]:
    """Return *kinds* as a frozenset, rejecting anything unsupported."""
    result = frozenset(kinds)
    unknown = result - SUPPORTED_SOURCE_KINDS
    if unknown:
        names = ", ".join(sorted(unknown))
        supported = ", ".join(sorted(SUPPORTED_SOURCE_KINDS))
        msg = f"unsupported source kind(s): {names} (supported: {supported})"
        raise ConfigError(msg)
    if not result:
        msg = "at least one source kind must be watched"
        raise ConfigError(msg)
    return result


def source_index_key(consumer: Consumer, kinds: frozenset[str]) -> SourceIndexKey | None:
    """Derive the index key for a Consumer, or None if it is not indexed."""
    if consumer.source_ref.kind not in kinds:
        return None
    return (consumer.source_ref.kind, consumer.source_key)


class ReverseIndex:
    """Source -> Consumers mapping with the latest Consumer snapshots.

    Args:
        source_kinds: Source kinds whose references are indexed.

    """

    __slots__ = ("_by_source", "_consumers", "_kinds", "_lock", "_ready", "_source_of")

    def __init__(self, source_kinds: Iterable[str] = ("GitRepository",)) -> None:
        self._kinds = validate_source_kinds(source_kinds)
        self._lock = threading.Lock()
        self._by_source: dict[SourceIndexKey, set[ObjectKey]] = {}
        self._source_of: dict[ObjectKey, SourceIndexKey] = {}
        self._consumers: dict[ObjectKey, Consumer] = {}
        self._ready = False

    @property
    def source_kinds(self) -> frozenset[str]:
        return self._kinds

    @property
    def ready(self) -> bool:
        """Whether the index has been built from a full listing."""
        with self._lock:
            return self._ready

    # ----- Writers -----

    def rebuild(self, consumers: Iterable[Consumer]) -> int:
        """Replace the whole index from a full Consumer listing.

        Returns the number of Consumers indexed under a Source.

        """
        by_source: dict[SourceIndexKey, set[ObjectKey]] = {}
        source_of: dict[ObjectKey, SourceIndexKey] = {}
        snapshots: dict[ObjectKey, Consumer] = {}
        for consumer in consumers:
            snapshots[consumer.key] = consumer
            old = source_of.pop(consumer.key, None)
            if old is not None:
                by_source[old].discard(consumer.key)
            index_key = source_index_key(consumer, self._kinds)
            if index_key is not None:
                by_source.setdefault(index_key, set()).add(consumer.key)
                source_of[consumer.key] = index_key

        with self._lock:
            self._by_source = {k: v for k, v in by_source.items() if v}
            self._source_of = source_of
            self._consumers = snapshots
            self._ready = True
        return len(source_of)

    def upsert(self, consumer: Consumer) -> None:
        """Record the latest state of a Consumer, moving it if its Source changed."""
        index_key = source_index_key(consumer, self._kinds)
        with self._lock:
            self._consumers[consumer.key] = consumer
            old = self._source_of.get(consumer.key)
            if old == index_key:
                return
            if old is not None:
                self._discard(old, consumer.key)
            if index_key is None:
                del self._source_of[consumer.key]
            else:
                self._by_source.setdefault(index_key, set()).add(consumer.key)
                self._source_of[consumer.key] = index_key

    def remove(self, key: ObjectKey) -> bool:
        """Forget a deleted Consumer.  Returns True if it was known."""
        with self._lock:
            known = self._consumers.pop(key, None) is not None
            old = self._source_of.pop(key, None)
            if old is not None:
                self._discard(old, key)
            return known

    def _discard(self, index_key: SourceIndexKey, key: ObjectKey) -> None:
        members = self._by_source.get(index_key)
        if members is None:
            return
        members.discard(key)
        if not members:
            del self._by_source[index_key]

    # ----- Readers -----

    def lookup(self, kind: str, source: ObjectKey) -> frozenset[ObjectKey]:
        """Keys of the Consumers referencing a Source.

        Raises:
            ListError: If the index has not been built yet.

        """
        with self._lock:
            self._require_ready()
            return frozenset(self._by_source.get((kind, source), ()))

    def consumers(self, kind: str, source: ObjectKey) -> list[Consumer]:
        """Latest snapshots of the Consumers referencing a Source.

        Raises:
            ListError: If the index has not been built yet.

        """
        with self._lock:
            self._require_ready()
            keys = self._by_source.get((kind, source), ())
            return [self._consumers[k] for k in keys]

    def get(self, key: ObjectKey) -> Consumer | None:
        """Latest observed snapshot of a Consumer, if known."""
        with self._lock:
            return self._consumers.get(key)

    def _require_ready(self) -> None:
        if not self._ready:
            msg = "reverse index has not been built; call rebuild() first"
            raise ListError(msg)

    def __len__(self) -> int:
        with self._lock:
            return len(self._consumers)

    def stats(self) -> dict[str, int]:
        """Return summary counts about the index."""
        with self._lock:
            return {
                "consumers": len(self._consumers),
                "indexed": len(self._source_of),
                "sources": len(self._by_source),
            }
