"""Nudge runtime — wires the store, index, requester, and pipeline together.

The three public functions (watch, trigger, plan) are the primary entry
points.
"""

import asyncio
import sys
import time
from pathlib import Path

from nudge._errors import ConfigError
from nudge.config import NudgeConfig
from nudge.config_loader import load_config
from nudge.objects.model import Consumer, ObjectKey
from nudge.objects.store import ManifestStore
from nudge.objects.watcher import ManifestWatcher
from nudge.observability.collector import TriggerCollector
from nudge.observability.log import EventLog
from nudge.sync.index import ReverseIndex
from nudge.sync.pipeline import TriggerPipeline, TriggerResult
from nudge.sync.requester import SyncRequester
from nudge.sync.sorter import dependency_sort


def _create_store(config: NudgeConfig) -> ManifestStore:
    """Create the manifest store for the configured directory.

    Raises:
        ConfigError: If the manifests directory does not exist.

    """
    if not config.manifests_path.is_dir():
        msg = f"manifests directory not found: {config.manifests_path}"
        raise ConfigError(msg)
    return ManifestStore(
        config.manifests_path,
        source_kinds=config.source_kinds,
        consumer_kind=config.consumer_kind,
    )


def _setup_pipeline(
    config: NudgeConfig, store: ManifestStore,
) -> tuple[TriggerPipeline, TriggerCollector]:
    """Build the trigger pipeline and its event collector."""
    collector = TriggerCollector(EventLog(max_events=config.max_events))
    requester = SyncRequester(
        store,
        annotation_key=config.annotation_key,
        backoff=config.backoff,
    )
    pipeline = TriggerPipeline(
        store,
        ReverseIndex(config.source_kinds),
        requester,
        collector=collector,
        timeout=config.timeout,
        verbose=config.verbose,
    )
    return pipeline, collector


def _parse_source(source: str | ObjectKey) -> ObjectKey:
    if isinstance(source, ObjectKey):
        return source
    try:
        return ObjectKey.parse(source)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _resolve_kind(config: NudgeConfig, kind: str | None) -> str:
    if kind is None:
        return config.source_kinds[0]
    if kind not in config.source_kinds:
        watched = ", ".join(config.source_kinds)
        msg = f"source kind {kind!r} is not watched (watched: {watched})"
        raise ConfigError(msg)
    return kind


async def _consume_events(watcher: ManifestWatcher, pipeline: TriggerPipeline) -> None:
    """Feed watcher events into the pipeline until the watcher stops.

    Consumer events are applied in arrival order so the index never goes
    backwards.  Each qualifying Source event runs as its own task, so
    triggers for different Sources proceed concurrently.

    """
    tasks: set[asyncio.Task[TriggerResult | None]] = set()
    try:
        async for event in watcher.changes():
            if event.role == "consumer":
                await pipeline.handle_event(event)
                continue
            task = asyncio.create_task(pipeline.handle_event(event))
            tasks.add(task)
            task.add_done_callback(_reap(tasks))
    finally:
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def _reap(tasks: set[asyncio.Task[TriggerResult | None]]):
    def _done(task: asyncio.Task[TriggerResult | None]) -> None:
        tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            print(f"  Pipeline error: {task.exception()}", file=sys.stderr)

    return _done


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def watch(root: str | Path = ".", **kwargs: object) -> None:
    """Watch manifests and request syncs whenever a Source revision changes.

    Seeds the reverse index and the Source revision tracker from the
    current manifests, then runs until interrupted.

    Args:
        root: Path to the project root directory.
        **kwargs: Override NudgeConfig fields.

    """
    from nudge.banner import print_banner

    config = load_config(Path(root), **kwargs)
    t0 = time.perf_counter()

    store = _create_store(config)
    pipeline, _collector = _setup_pipeline(config, store)

    async def _run() -> None:
        sources, consumers = await pipeline.seed()
        load_ms = (time.perf_counter() - t0) * 1000
        print_banner(
            config, sources, consumers, mode="watch",
            indexed=pipeline.index.stats()["indexed"], load_ms=load_ms,
        )

        watcher = ManifestWatcher(config, store)
        watcher.start()
        try:
            await _consume_events(watcher, pipeline)
        finally:
            watcher.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        print("  Stopped.", file=sys.stderr)


def trigger(
    root: str | Path = ".",
    source: str | ObjectKey = "",
    *,
    kind: str | None = None,
    **kwargs: object,
) -> TriggerResult:
    """Run a single trigger for a Source, as if its revision had changed.

    Args:
        root: Path to the project root directory.
        source: Source identity, ``namespace/name`` or a bare name.
        kind: Source kind (defaults to the first watched kind).
        **kwargs: Override NudgeConfig fields.

    """
    from nudge.banner import print_banner

    config = load_config(Path(root), **kwargs)
    key = _parse_source(source)
    source_kind = _resolve_kind(config, kind)
    t0 = time.perf_counter()

    store = _create_store(config)
    pipeline, _collector = _setup_pipeline(config, store)

    async def _run() -> TriggerResult:
        sources, consumers = await pipeline.seed()
        if config.verbose:
            print_banner(
                config, sources, consumers, mode="trigger",
                indexed=pipeline.index.stats()["indexed"],
                load_ms=(time.perf_counter() - t0) * 1000,
            )
        return await pipeline.trigger(source_kind, key)

    return asyncio.run(_run())


def plan(
    root: str | Path = ".",
    source: str | ObjectKey = "",
    *,
    kind: str | None = None,
    **kwargs: object,
) -> list[Consumer]:
    """Return the order in which a Source's Consumers would be synced.

    Nothing is written.

    Raises:
        CycleError: If the Consumers' dependencies are cyclic.

    """
    config = load_config(Path(root), **kwargs)
    key = _parse_source(source)
    source_kind = _resolve_kind(config, kind)

    store = _create_store(config)
    index = ReverseIndex(config.source_kinds)
    index.rebuild(store.list_consumers())
    return dependency_sort(index.consumers(source_kind, key))
