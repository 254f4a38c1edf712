"""Object model — Sources, Consumers, and the references between them.

Objects are read from Kubernetes-style manifest documents::

    kind: Kustomization
    metadata:
      namespace: apps
      name: app-c
      resourceVersion: "3"
      annotations: {}
    spec:
      sourceRef: {kind: GitRepository, name: repo-a}
      dependsOn: [app-b]

Only the fields the trigger pipeline reads are modelled.  Everything else in
the document is carried along in ``manifest`` so an update writes it back
untouched.

Thread Safety:
    All model types are frozen dataclasses.  ``Consumer.with_sync_request``
    returns a new object rather than mutating the snapshot it was called on,
    so snapshots held by the reverse index are never changed underneath a
    concurrent reader.

"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any

from nudge._errors import ManifestError

DEFAULT_NAMESPACE = "default"
DEFAULT_CONSUMER_KIND = "Kustomization"


@dataclass(frozen=True, slots=True, order=True)
class ObjectKey:
    """Identity of a namespaced object.

    Keys order by namespace, then name; the dependency sorter uses this
    ordering to break ties.

    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, text: str, *, namespace: str = DEFAULT_NAMESPACE) -> ObjectKey:
        """Parse ``namespace/name`` or a bare ``name`` (in *namespace*)."""
        ns, sep, name = text.strip().partition("/")
        if not sep:
            ns, name = namespace, ns
        if not ns or not name or "/" in name:
            msg = f"invalid object reference: {text!r}"
            raise ValueError(msg)
        return cls(namespace=ns, name=name)


@dataclass(frozen=True, slots=True)
class SourceRef:
    """A Consumer's reference to the Source it builds from.

    Attributes:
        kind: Source kind (e.g. ``GitRepository``).
        name: Source name.
        namespace: Source namespace; None means the Consumer's own namespace.
        api_group: API group qualifier.  None means "never set"; the sync
            requester replaces it with an explicit empty string.

    """

    kind: str
    name: str
    namespace: str | None = None
    api_group: str | None = None

    def key_for(self, owner: ObjectKey) -> ObjectKey:
        """Resolve the referenced Source's key relative to its owner."""
        return ObjectKey(self.namespace or owner.namespace, self.name)


@dataclass(frozen=True, slots=True)
class Source:
    """An object whose revision change starts a trigger."""

    kind: str
    key: ObjectKey
    revision: str | None = None
    resource_version: str = ""


@dataclass(frozen=True, slots=True)
class Consumer:
    """An object that references a Source and other Consumers.

    Attributes:
        key: Identity of this Consumer.
        source_ref: The Source this Consumer is built from.
        depends_on: Consumers that must sync before this one.
        annotations: Metadata bag; None when the manifest has none.  Null
            values are kept as None so they round-trip unchanged.
        resource_version: Optimistic-concurrency token from the store.
        kind: Consumer kind from the manifest.
        manifest: The full manifest document, for round-tripping.

    """

    key: ObjectKey
    source_ref: SourceRef
    depends_on: tuple[ObjectKey, ...] = ()
    annotations: dict[str, str | None] | None = None
    resource_version: str = ""
    kind: str = DEFAULT_CONSUMER_KIND
    manifest: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def source_key(self) -> ObjectKey:
        return self.source_ref.key_for(self.key)

    def with_sync_request(self, annotation_key: str, timestamp: str) -> Consumer:
        """Return a copy annotated with a sync request.

        The annotations bag is created when missing, and an unset API group
        on the source reference is written as an explicit empty string.

        """
        annotations = dict(self.annotations or {})
        annotations[annotation_key] = timestamp
        source_ref = self.source_ref
        if source_ref.api_group is None:
            source_ref = replace(source_ref, api_group="")
        return replace(self, annotations=annotations, source_ref=source_ref)


# ---------------------------------------------------------------------------
# Manifest parsing
# ---------------------------------------------------------------------------


def _metadata(doc: dict[str, Any]) -> tuple[ObjectKey, dict[str, Any]]:
    meta = doc.get("metadata")
    if not isinstance(meta, dict) or not meta.get("name"):
        msg = f"{doc.get('kind', 'object')} manifest has no metadata.name"
        raise ManifestError(msg)
    key = ObjectKey(str(meta.get("namespace") or DEFAULT_NAMESPACE), str(meta["name"]))
    return key, meta


def parse_source(doc: dict[str, Any]) -> Source:
    """Build a Source from a manifest document.

    The revision is read from ``status.artifact.revision``; a Source that
    has not produced an artifact yet has no revision.

    """
    key, meta = _metadata(doc)
    status = doc.get("status") or {}
    artifact = status.get("artifact") if isinstance(status, dict) else None
    revision = artifact.get("revision") if isinstance(artifact, dict) else None
    return Source(
        kind=str(doc.get("kind", "")),
        key=key,
        revision=str(revision) if revision is not None else None,
        resource_version=str(meta.get("resourceVersion") or ""),
    )


def _parse_dependency(entry: object, owner: ObjectKey) -> ObjectKey:
    if isinstance(entry, dict):
        name = entry.get("name")
        if not name:
            msg = f"{owner}: dependsOn entry without a name"
            raise ManifestError(msg)
        return ObjectKey(str(entry.get("namespace") or owner.namespace), str(name))
    try:
        return ObjectKey.parse(str(entry), namespace=owner.namespace)
    except ValueError as exc:
        raise ManifestError(f"{owner}: {exc}") from exc


def parse_consumer(doc: dict[str, Any]) -> Consumer:
    """Build a Consumer from a manifest document."""
    key, meta = _metadata(doc)
    spec = doc.get("spec") or {}
    ref = spec.get("sourceRef") if isinstance(spec, dict) else None
    if not isinstance(ref, dict) or not ref.get("kind") or not ref.get("name"):
        msg = f"{key}: spec.sourceRef needs kind and name"
        raise ManifestError(msg)

    api_group = ref.get("apiGroup")
    source_ref = SourceRef(
        kind=str(ref["kind"]),
        name=str(ref["name"]),
        namespace=ref.get("namespace"),
        api_group=str(api_group) if api_group is not None else None,
    )

    depends_on = tuple(_parse_dependency(e, key) for e in spec.get("dependsOn") or ())

    raw_annotations = meta.get("annotations")
    annotations = (
        {str(k): None if v is None else str(v) for k, v in raw_annotations.items()}
        if isinstance(raw_annotations, dict)
        else None
    )

    return Consumer(
        key=key,
        source_ref=source_ref,
        depends_on=depends_on,
        annotations=annotations,
        resource_version=str(meta.get("resourceVersion") or ""),
        kind=str(doc.get("kind") or DEFAULT_CONSUMER_KIND),
        manifest=copy.deepcopy(doc),
    )


def consumer_to_manifest(consumer: Consumer) -> dict[str, Any]:
    """Serialise a Consumer back into its manifest document.

    Starts from the original manifest so unmodelled fields survive, then
    writes the fields the pipeline may have changed.

    """
    doc = copy.deepcopy(consumer.manifest)
    doc.setdefault("kind", consumer.kind)
    meta = doc.setdefault("metadata", {})
    meta["name"] = consumer.key.name
    meta["namespace"] = consumer.key.namespace
    if consumer.annotations is not None:
        meta["annotations"] = dict(consumer.annotations)
    if consumer.resource_version:
        meta["resourceVersion"] = consumer.resource_version

    spec = doc.setdefault("spec", {})
    ref = spec.setdefault("sourceRef", {})
    ref["kind"] = consumer.source_ref.kind
    ref["name"] = consumer.source_ref.name
    if consumer.source_ref.namespace is not None:
        ref["namespace"] = consumer.source_ref.namespace
    if consumer.source_ref.api_group is not None:
        ref["apiGroup"] = consumer.source_ref.api_group
    return doc
