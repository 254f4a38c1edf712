"""Object store — get/list/update primitives over Sources and Consumers.

The trigger pipeline only needs a handful of operations from whatever holds
the objects, captured by the ``ObjectStore`` protocol.  ``ManifestStore`` is
the bundled implementation: a directory tree of YAML manifests, one object
per file, with ``metadata.resourceVersion`` plus the document body as the
optimistic-concurrency token.

Update semantics mirror an API server's:
    - the caller's ``resource_version`` must equal the stored one and the
      snapshot's manifest must match the file, otherwise ``ConflictError``
      is raised and nothing is written;
    - a successful write bumps ``resourceVersion`` and returns the stored
      object;
    - a missing object raises ``NotFoundError``.

Writes go to a dot-prefixed temp file that is renamed over the manifest, so
the watcher never observes a half-written document.
"""

from __future__ import annotations

import os
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import yaml

from nudge._errors import ConflictError, ManifestError, NotFoundError, StoreError
from nudge.objects.model import (
    Consumer,
    ObjectKey,
    Source,
    consumer_to_manifest,
    parse_consumer,
    parse_source,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nudge._types import ObjectRole

MANIFEST_SUFFIXES = frozenset({".yaml", ".yml"})


class ObjectStore(Protocol):
    """The read/write surface the trigger pipeline consumes."""

    def get_source(self, kind: str, key: ObjectKey) -> Source: ...

    def get_consumer(self, key: ObjectKey) -> Consumer: ...

    def list_sources(self) -> list[Source]: ...

    def list_consumers(self) -> list[Consumer]: ...

    def list_objects(self) -> tuple[list[Source], list[Consumer]]:
        """Sources and Consumers from one consistent read of the store."""
        ...

    def update_consumer(self, consumer: Consumer) -> Consumer: ...


def is_manifest(path: Path) -> bool:
    """True for YAML files that are not hidden or temporary."""
    return path.suffix in MANIFEST_SUFFIXES and not path.name.startswith(".")


class ManifestStore:
    """File-backed object store over a directory of YAML manifests.

    Args:
        root: Directory containing manifest files (searched recursively).
        source_kinds: Kinds treated as Sources.
        consumer_kind: Kind treated as Consumers.

    Thread Safety:
        The path map and every read-compare-write cycle are guarded by one
        ``threading.Lock``, so concurrent updates to the same Consumer from
        different triggers serialise and the loser sees a conflict.

    """

    def __init__(
        self,
        root: Path,
        *,
        source_kinds: Iterable[str] = ("GitRepository",),
        consumer_kind: str = "Kustomization",
    ) -> None:
        self._root = root
        self._source_kinds = frozenset(source_kinds)
        self._consumer_kind = consumer_kind
        self._lock = threading.Lock()
        # (kind, key) -> manifest path; rebuilt by scan(), kept current by load()
        self._paths: dict[tuple[str, ObjectKey], Path] = {}
        self._keys_by_path: dict[Path, tuple[str, ObjectKey]] = {}

    @property
    def root(self) -> Path:
        return self._root

    def role_of(self, kind: str) -> ObjectRole | None:
        """Classify a manifest kind, or None if the store ignores it."""
        if kind in self._source_kinds:
            return "source"
        if kind == self._consumer_kind:
            return "consumer"
        return None

    # ----- Loading -----

    def scan(self) -> list[Source | Consumer]:
        """Read every manifest under the root and rebuild the path map.

        Files that fail to parse are reported on stderr and skipped; one bad
        manifest must not hide every other object.

        """
        objects: list[Source | Consumer] = []
        paths: dict[tuple[str, ObjectKey], Path] = {}
        if self._root.is_dir():
            for path in sorted(self._root.rglob("*")):
                if not path.is_file() or not is_manifest(path):
                    continue
                try:
                    obj = self._parse(path)
                except ManifestError as exc:
                    print(f"  Skipping {path.name}: {exc}", file=sys.stderr)
                    continue
                if obj is None:
                    continue
                paths[(obj.kind, obj.key)] = path
                objects.append(obj)

        with self._lock:
            self._paths = paths
            self._keys_by_path = {p: k for k, p in paths.items()}
        return objects

    def load(self, path: Path) -> Source | Consumer | None:
        """Parse one manifest and record where its object lives.

        Returns None when the manifest is of a kind the store ignores.

        Raises:
            ManifestError: If the file cannot be parsed.
            NotFoundError: If the file does not exist.

        """
        obj = self._parse(path)
        with self._lock:
            previous = self._keys_by_path.pop(path, None)
            if previous is not None and self._paths.get(previous) == path:
                del self._paths[previous]
            if obj is not None:
                ident = (obj.kind, obj.key)
                self._paths[ident] = path
                self._keys_by_path[path] = ident
        return obj

    def forget(self, path: Path) -> tuple[str, ObjectKey] | None:
        """Drop a deleted manifest, returning the ``(kind, key)`` it held."""
        with self._lock:
            ident = self._keys_by_path.pop(path, None)
            if ident is not None and self._paths.get(ident) == path:
                del self._paths[ident]
            return ident

    # ----- ObjectStore protocol -----

    def list_sources(self) -> list[Source]:
        return self.list_objects()[0]

    def list_consumers(self) -> list[Consumer]:
        return self.list_objects()[1]

    def list_objects(self) -> tuple[list[Source], list[Consumer]]:
        objects = self.scan()
        return (
            [o for o in objects if isinstance(o, Source)],
            [o for o in objects if isinstance(o, Consumer)],
        )

    def get_source(self, kind: str, key: ObjectKey) -> Source:
        obj = self._get(kind, key)
        if not isinstance(obj, Source):
            raise NotFoundError(f"{kind} {key} not found")
        return obj

    def get_consumer(self, key: ObjectKey) -> Consumer:
        obj = self._get(self._consumer_kind, key)
        if not isinstance(obj, Consumer):
            raise NotFoundError(f"{self._consumer_kind} {key} not found")
        return obj

    def update_consumer(self, consumer: Consumer) -> Consumer:
        """Write *consumer* if the manifest still matches the snapshot it came from.

        Both the resource version and the document body are compared: an
        edit made by hand or by a VCS checkout rarely touches
        ``resourceVersion``, but it always changes the body.  A snapshot
        carrying no manifest body is treated as stale.

        Raises:
            NotFoundError: The Consumer's manifest no longer exists.
            ConflictError: The stored resource version or body differs.
            StoreError: The manifest could not be written.

        """
        path = self._locate(self._consumer_kind, consumer.key)
        with self._lock:
            current = _read_document(path)
            stored = str((current.get("metadata") or {}).get("resourceVersion") or "")
            if stored != consumer.resource_version:
                msg = (
                    f"{self._consumer_kind} {consumer.key} was modified "
                    f"(resourceVersion {consumer.resource_version!r} != {stored!r})"
                )
                raise ConflictError(msg)
            if _body(current) != _body(consumer.manifest):
                msg = f"{self._consumer_kind} {consumer.key} was modified on disk since it was read"
                raise ConflictError(msg)

            doc = consumer_to_manifest(consumer)
            doc.setdefault("metadata", {})["resourceVersion"] = _next_version(stored)
            _write_document(path, doc)
            return parse_consumer(doc)

    # ----- Internals -----

    def _locate(self, kind: str, key: ObjectKey) -> Path:
        """Path of an object's manifest, rescanning once if it is unknown."""
        with self._lock:
            path = self._paths.get((kind, key))
        if path is None:
            self.scan()
            with self._lock:
                path = self._paths.get((kind, key))
        if path is None:
            raise NotFoundError(f"{kind} {key} not found")
        return path

    def _get(self, kind: str, key: ObjectKey) -> Source | Consumer:
        path = self._locate(kind, key)
        obj = self._parse(path)
        if obj is None or obj.key != key or obj.kind != kind:
            raise NotFoundError(f"{kind} {key} not found")
        return obj

    def _parse(self, path: Path) -> Source | Consumer | None:
        doc = _read_document(path)
        role = self.role_of(str(doc.get("kind", "")))
        if role == "source":
            return parse_source(doc)
        if role == "consumer":
            return parse_consumer(doc)
        return None


def _body(doc: dict[str, Any]) -> dict[str, Any]:
    """A manifest without its resourceVersion, for content comparison."""
    meta = dict(doc.get("metadata") or {})
    meta.pop("resourceVersion", None)
    return {**doc, "metadata": meta}


def _next_version(stored: str) -> str:
    try:
        return str(int(stored) + 1)
    except ValueError:
        return "1"


def _read_document(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise NotFoundError(f"{path} not found") from exc
    except OSError as exc:
        raise StoreError(f"cannot read {path}: {exc}") from exc
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestError(f"{path.name}: invalid YAML: {exc}") from exc
    if not isinstance(doc, dict):
        raise ManifestError(f"{path.name}: manifest must be a mapping")
    return doc


def _write_document(path: Path, doc: dict[str, Any]) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        tmp.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
        os.replace(tmp, path)
    except OSError as exc:
        raise StoreError(f"cannot write {path}: {exc}") from exc
