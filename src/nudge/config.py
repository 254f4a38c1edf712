"""Nudge configuration.

NudgeConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

from nudge._errors import ConfigError
from nudge.sync.index import validate_source_kinds
from nudge.sync.requester import DEFAULT_ANNOTATION_KEY
from nudge.sync.retry import Backoff


@dataclass(frozen=True, slots=True)
class NudgeConfig:
    """Configuration for a Nudge runtime.

    Attributes:
        root: Project root directory (contains the manifests directory and
              optional nudge.yaml).  Always resolved to an absolute path on
              construction.
        manifests_dir: Directory of Source and Consumer manifests, relative
            to root.
        source_kinds: Source kinds whose revisions trigger syncs.  Must be
            drawn from ``SUPPORTED_SOURCE_KINDS``.
        consumer_kind: Kind of the objects that receive sync requests.
        annotation_key: Annotation set to the request timestamp.
        timeout: Wall-clock budget for one trigger, in seconds.
        retry_steps: Maximum update attempts per Consumer.
        retry_delay: Delay before the first retry, in seconds.
        retry_factor: Backoff multiplier between retries.
        retry_jitter: Random fraction added to each retry delay.
        max_events: Capacity of the in-memory event log.
        verbose: Print per-trigger summaries to stderr.

    """

    root: Path = field(default_factory=Path.cwd)
    manifests_dir: str = "manifests"
    source_kinds: tuple[str, ...] = ("GitRepository",)
    consumer_kind: str = "Kustomization"
    annotation_key: str = DEFAULT_ANNOTATION_KEY
    timeout: float = 15.0
    retry_steps: int = 4
    retry_delay: float = 0.01
    retry_factor: float = 5.0
    retry_jitter: float = 0.1
    max_events: int = 10_000
    verbose: bool = True

    def __post_init__(self) -> None:
        # Resolve root to absolute so that watchfiles (which returns
        # absolute paths) can be matched against the store's path map.
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if isinstance(self.source_kinds, str):
            object.__setattr__(self, "source_kinds", (self.source_kinds,))
        else:
            object.__setattr__(self, "source_kinds", tuple(self.source_kinds))
        validate_source_kinds(self.source_kinds)

        if self.consumer_kind in self.source_kinds:
            msg = f"consumer_kind {self.consumer_kind!r} is also a source kind"
            raise ConfigError(msg)
        if not self.annotation_key:
            msg = "annotation_key must not be empty"
            raise ConfigError(msg)
        if self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout}"
            raise ConfigError(msg)
        if self.retry_steps < 1:
            msg = f"retry_steps must be at least 1, got {self.retry_steps}"
            raise ConfigError(msg)
        if self.retry_delay < 0 or self.retry_factor < 1 or self.retry_jitter < 0:
            msg = "retry_delay and retry_jitter must be >= 0 and retry_factor >= 1"
            raise ConfigError(msg)
        if self.max_events < 1:
            msg = f"max_events must be at least 1, got {self.max_events}"
            raise ConfigError(msg)

    @property
    def manifests_path(self) -> Path:
        """Absolute path to the manifests directory."""
        return self.root / self.manifests_dir

    @property
    def backoff(self) -> Backoff:
        """Retry policy for conflicting Consumer updates."""
        return Backoff(
            steps=self.retry_steps,
            duration=self.retry_delay,
            factor=self.retry_factor,
            jitter=self.retry_jitter,
        )
