"""Shared type definitions for nudge."""

from collections.abc import Callable
from typing import Literal

# Kind of filesystem/object change observed
type ChangeKind = Literal["created", "modified", "deleted"]

# Which side of the pipeline an object belongs to
type ObjectRole = Literal["source", "consumer"]

# Outcome of a single sync request
type SyncStatus = Literal["requested", "missing", "failed"]

# Outcome of a whole trigger
type TriggerStatus = Literal["completed", "skipped", "failed", "timeout"]

# Sleep function used by the retry combinator
type Sleeper = Callable[[float], None]
