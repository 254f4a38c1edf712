"""Manifest watcher — turns filesystem changes into object events.

Monitors the manifests directory.  Each changed YAML file is re-read through
the store and reported as an ``ObjectEvent``:

- Source manifest changed  -> revision check -> trigger
- Consumer manifest changed -> reverse index update
- Manifest deleted          -> forget the object it held
"""

from __future__ import annotations

import asyncio
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchfiles import Change

from nudge._errors import ManifestError, NotFoundError
from nudge.objects.store import is_manifest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from nudge._types import ChangeKind, ObjectRole
    from nudge.config import NudgeConfig
    from nudge.objects.model import Consumer, ObjectKey, Source
    from nudge.objects.store import ManifestStore


@dataclass(frozen=True, slots=True)
class ObjectEvent:
    """A Source or Consumer was created, modified or deleted.

    Attributes:
        role: Which side of the pipeline the object belongs to.
        kind: Object kind from the manifest.
        key: Object identity.
        change: Type of change.
        obj: The new state; None for deletions.

    """

    role: ObjectRole
    kind: str
    key: ObjectKey
    change: ChangeKind
    obj: Source | Consumer | None = None


# Mapping from watchfiles Change enum to our kind literals.
_CHANGE_KIND_MAP: dict[Change, ChangeKind] = {
    Change.added: "created",
    Change.modified: "modified",
    Change.deleted: "deleted",
}


def resolve_event(
    path: Path, change: ChangeKind, store: ManifestStore,
) -> ObjectEvent | None:
    """Turn a raw file change into an ObjectEvent.

    Returns None for files that are not manifests, manifests of kinds the
    store ignores, and manifests that fail to parse (reported on stderr).
    A file that vanished before it could be read is treated as deleted.

    """
    if not is_manifest(path):
        return None

    if change != "deleted":
        try:
            obj = store.load(path)
        except ManifestError as exc:
            print(f"  Skipping {path.name}: {exc}", file=sys.stderr)
            return None
        except NotFoundError:
            change = "deleted"
        else:
            if obj is None:
                return None
            role = store.role_of(obj.kind)
            if role is None:
                return None
            return ObjectEvent(role=role, kind=obj.kind, key=obj.key, change=change, obj=obj)

    ident = store.forget(path)
    if ident is None:
        return None
    kind, key = ident
    role = store.role_of(kind)
    if role is None:
        return None
    return ObjectEvent(role=role, kind=kind, key=key, change="deleted")


class ManifestWatcher:
    """Watches the manifests directory and yields object events.

    Uses watchfiles for efficient filesystem monitoring.  The watch loop runs
    in a background thread and hands events to the event loop that iterates
    ``changes()``.

    """

    def __init__(self, config: NudgeConfig, store: ManifestStore) -> None:
        self._config = config
        self._store = store
        self._queue: asyncio.Queue[ObjectEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Whether the watcher background thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start watching for manifest changes in a background thread."""
        if self.is_running:
            return

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="nudge-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the watcher to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    async def changes(self) -> AsyncIterator[ObjectEvent]:
        """Async iterator that yields ObjectEvents as they occur.

        Blocks until a change is available or the watcher is stopped.

        """
        self._loop = asyncio.get_running_loop()
        while self.is_running or not self._queue.empty():
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except TimeoutError:
                if not self.is_running:
                    break

    def _emit(self, event: ObjectEvent) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._queue.put_nowait, event)
        else:
            self._queue.put_nowait(event)

    def _watch_loop(self) -> None:
        """Background thread: run watchfiles and push events to the queue."""
        from watchfiles import watch

        for raw_changes in watch(
            self._config.manifests_path,
            stop_event=self._stop_event,
            debounce=300,
            step=100,
        ):
            for change_type, path_str in sorted(raw_changes, key=lambda c: c[1]):
                kind = _CHANGE_KIND_MAP.get(change_type, "modified")
                event = resolve_event(Path(path_str), kind, self._store)
                if event is not None:
                    self._emit(event)
