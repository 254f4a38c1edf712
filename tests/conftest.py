"""Shared test fixtures for nudge."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from nudge._errors import ConflictError, NotFoundError
from nudge.objects.model import Consumer, ObjectKey, Source, SourceRef
from nudge.objects.store import ManifestStore


def git_repository(
    name: str,
    *,
    namespace: str = "flux-system",
    revision: str | None = "r1",
    resource_version: str = "1",
) -> dict[str, Any]:
    """Build a GitRepository manifest document."""
    doc: dict[str, Any] = {
        "apiVersion": "source.toolkit.fluxcd.io/v1",
        "kind": "GitRepository",
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": resource_version},
        "spec": {"url": f"https://example.com/{name}.git", "interval": "1m"},
    }
    if revision is not None:
        doc["status"] = {"artifact": {"revision": revision}}
    return doc


def kustomization(
    name: str,
    *,
    namespace: str = "apps",
    source: str = "repo-a",
    source_namespace: str | None = "flux-system",
    source_kind: str = "GitRepository",
    depends_on: list[Any] | None = None,
    annotations: dict[str, Any] | None = None,
    resource_version: str = "1",
) -> dict[str, Any]:
    """Build a Kustomization manifest document."""
    meta: dict[str, Any] = {"name": name, "namespace": namespace, "resourceVersion": resource_version}
    if annotations is not None:
        meta["annotations"] = annotations
    source_ref: dict[str, Any] = {"kind": source_kind, "name": source}
    if source_namespace is not None:
        source_ref["namespace"] = source_namespace
    spec: dict[str, Any] = {"path": f"./{name}", "prune": True, "sourceRef": source_ref}
    if depends_on:
        spec["dependsOn"] = depends_on
    return {
        "apiVersion": "kustomize.toolkit.fluxcd.io/v1",
        "kind": "Kustomization",
        "metadata": meta,
        "spec": spec,
    }


def write_manifest(directory: Path, filename: str, doc: dict[str, Any]) -> Path:
    """Write one manifest document as YAML and return its path."""
    path = directory / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(doc, sort_keys=False))
    return path


def read_manifest(path: Path) -> dict[str, Any]:
    return yaml.safe_load(path.read_text())


def make_consumer(
    name: str,
    *,
    namespace: str = "apps",
    source: str = "repo-a",
    depends_on: tuple[str, ...] = (),
    resource_version: str = "1",
    api_group: str | None = None,
) -> Consumer:
    """Create a Consumer without a backing manifest."""
    return Consumer(
        key=ObjectKey(namespace, name),
        source_ref=SourceRef(
            kind="GitRepository", name=source, namespace="flux-system", api_group=api_group,
        ),
        depends_on=tuple(ObjectKey.parse(d, namespace=namespace) for d in depends_on),
        resource_version=resource_version,
    )


class FakeStore:
    """In-memory ObjectStore with scripted failures.

    ``conflicts[key]`` is how many updates of that Consumer should conflict
    before one succeeds.  ``missing`` holds Consumer keys whose updates raise
    NotFoundError.

    """

    def __init__(
        self,
        sources: list[Source] | None = None,
        consumers: list[Consumer] | None = None,
    ) -> None:
        self.sources = {(s.kind, s.key): s for s in sources or ()}
        self.consumers = {c.key: c for c in consumers or ()}
        self.conflicts: dict[ObjectKey, int] = {}
        self.missing: set[ObjectKey] = set()
        self.updates: list[Consumer] = []
        self.list_calls = 0

    def get_source(self, kind: str, key: ObjectKey) -> Source:
        try:
            return self.sources[(kind, key)]
        except KeyError:
            raise NotFoundError(f"{kind} {key} not found") from None

    def get_consumer(self, key: ObjectKey) -> Consumer:
        if key in self.missing or key not in self.consumers:
            raise NotFoundError(f"Kustomization {key} not found")
        return self.consumers[key]

    def list_sources(self) -> list[Source]:
        return list(self.sources.values())

    def list_consumers(self) -> list[Consumer]:
        return list(self.consumers.values())

    def list_objects(self) -> tuple[list[Source], list[Consumer]]:
        self.list_calls += 1
        return self.list_sources(), self.list_consumers()

    def update_consumer(self, consumer: Consumer) -> Consumer:
        if consumer.key in self.missing or consumer.key not in self.consumers:
            raise NotFoundError(f"Kustomization {consumer.key} not found")
        remaining = self.conflicts.get(consumer.key, 0)
        if remaining:
            self.conflicts[consumer.key] = remaining - 1
            stored = self.consumers[consumer.key]
            bumped = Consumer(
                key=stored.key,
                source_ref=stored.source_ref,
                depends_on=stored.depends_on,
                annotations=stored.annotations,
                resource_version=str(int(stored.resource_version or "0") + 1),
            )
            self.consumers[consumer.key] = bumped
            raise ConflictError(f"Kustomization {consumer.key} was modified")
        self.updates.append(consumer)
        self.consumers[consumer.key] = consumer
        return consumer


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project root with one Source and three Consumers.

    ``app-c`` depends on ``app-b``; ``app-a`` has no dependencies.
    """
    manifests = tmp_path / "manifests"
    write_manifest(manifests, "sources/repo-a.yaml", git_repository("repo-a"))
    write_manifest(manifests, "apps/app-a.yaml", kustomization("app-a"))
    write_manifest(manifests, "apps/app-b.yaml", kustomization("app-b"))
    write_manifest(
        manifests, "apps/app-c.yaml", kustomization("app-c", depends_on=[{"name": "app-b"}]),
    )
    return tmp_path


@pytest.fixture
def manifests(project: Path) -> Path:
    return project / "manifests"


@pytest.fixture
def store(manifests: Path) -> ManifestStore:
    """A ManifestStore over the ``project`` manifests, already scanned."""
    manifest_store = ManifestStore(manifests)
    manifest_store.scan()
    return manifest_store
