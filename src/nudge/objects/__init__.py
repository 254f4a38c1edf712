"""Object layer — Sources, Consumers, and where they come from.

Models the objects the trigger pipeline reads, decides which Source changes
matter, and reads/writes/watches them through the manifest store.
"""

from nudge.objects.filter import SourceTracker, revision_changed
from nudge.objects.model import Consumer, ObjectKey, Source, SourceRef
from nudge.objects.store import ManifestStore, ObjectStore
from nudge.objects.watcher import ManifestWatcher, ObjectEvent

__all__ = [
    "Consumer",
    "ManifestStore",
    "ManifestWatcher",
    "ObjectEvent",
    "ObjectKey",
    "ObjectStore",
    "Source",
    "SourceRef",
    "SourceTracker",
    "revision_changed",
]
