"""Nudge error hierarchy.

All nudge-specific errors inherit from NudgeError for easy catching.
Store errors share StoreError so the requester can tell substrate
failures apart from ordering and lookup failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nudge.objects.model import ObjectKey


class NudgeError(Exception):
    """Base error for all nudge operations."""


class ConfigError(NudgeError):
    """Invalid or missing configuration."""


class ManifestError(NudgeError):
    """A manifest file could not be parsed into a Source or Consumer."""


class StoreError(NudgeError):
    """The object store failed to read or write an object."""


class NotFoundError(StoreError):
    """The requested object does not exist (or no longer exists)."""


class ConflictError(StoreError):
    """An update was rejected because the stored object changed since it was read."""


class RetriesExhaustedError(StoreError):
    """Conflicts kept recurring until the backoff policy ran out of steps."""


class ListError(NudgeError):
    """The reverse index could not answer a dependents lookup."""


class CycleError(NudgeError):
    """Consumers depend on each other in a cycle; no valid order exists.

    Attributes:
        members: Keys of every consumer left unplaced, sorted.

    """

    def __init__(self, members: Iterable[ObjectKey]) -> None:
        self.members = tuple(sorted(members))
        names = ", ".join(str(k) for k in self.members)
        super().__init__(f"dependency cycle among: {names}")


class TriggerTimeoutError(NudgeError):
    """A trigger exceeded its wall-clock budget."""
