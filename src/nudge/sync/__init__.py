"""Sync layer — from a changed Source to ordered sync requests.

Connects Source revision changes to Consumer sync requests through the
reverse index, the dependency sorter, and the conflict-safe requester.
"""

from nudge.sync.index import SUPPORTED_SOURCE_KINDS, ReverseIndex
from nudge.sync.pipeline import TriggerPipeline, TriggerResult
from nudge.sync.requester import SyncClock, SyncOutcome, SyncRequester
from nudge.sync.retry import Attempt, Backoff, retry_on_conflict
from nudge.sync.sorter import dependency_sort

__all__ = [
    "SUPPORTED_SOURCE_KINDS",
    "Attempt",
    "Backoff",
    "ReverseIndex",
    "SyncClock",
    "SyncOutcome",
    "SyncRequester",
    "TriggerPipeline",
    "TriggerResult",
    "dependency_sort",
    "retry_on_conflict",
]
