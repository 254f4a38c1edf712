"""Tests for nudge.sync.retry — conflict retry with backoff."""

from __future__ import annotations

import pytest

from nudge._errors import ConflictError, NotFoundError, RetriesExhaustedError
from nudge.sync.retry import DEFAULT_BACKOFF, Attempt, Backoff, retry_on_conflict


class TestBackoff:
    """Backoff.delays — exponential schedule with bounded jitter."""

    def test_default_policy(self) -> None:
        assert DEFAULT_BACKOFF == Backoff(steps=4, duration=0.01, factor=5.0, jitter=0.1)

    def test_delays_without_jitter(self) -> None:
        delays = list(Backoff(steps=4, duration=0.01, factor=5.0, jitter=0.0).delays())
        assert delays == pytest.approx([0.01, 0.05, 0.25])

    def test_jitter_adds_fraction(self) -> None:
        delays = list(Backoff(steps=3, duration=1.0, factor=2.0, jitter=0.1).delays(lambda: 1.0))
        assert delays == pytest.approx([1.1, 2.2])

    def test_jitter_upper_bound(self) -> None:
        for delay, base in zip(DEFAULT_BACKOFF.delays(), (0.01, 0.05, 0.25), strict=True):
            assert base * 0.999 <= delay <= base * 1.101

    def test_single_step_has_no_delays(self) -> None:
        assert list(Backoff(steps=1).delays()) == []


class TestRetryOnConflict:
    """retry_on_conflict — explicit Attempt state, fresh reads on retry."""

    def test_success_first_try(self) -> None:
        seen: list[Attempt[str]] = []

        def mutate(attempt: Attempt[str]) -> str:
            seen.append(attempt)
            return attempt.snapshot.upper()

        result, attempts = retry_on_conflict(mutate, "v1", lambda: "fresh", sleep=_no_sleep)
        assert result == "V1"
        assert attempts == 1
        assert seen == [Attempt(snapshot="v1", first_try=True, number=1)]

    def test_retry_uses_fetched_state(self) -> None:
        seen: list[Attempt[str]] = []
        versions = iter(["v2", "v3"])

        def mutate(attempt: Attempt[str]) -> str:
            seen.append(attempt)
            if attempt.number < 3:
                raise ConflictError("stale")
            return attempt.snapshot

        sleeps: list[float] = []
        result, attempts = retry_on_conflict(
            mutate, "v1", lambda: next(versions), sleep=sleeps.append, rand=lambda: 0.0,
        )

        assert result == "v3"
        assert attempts == 3
        assert seen == [
            Attempt(snapshot="v1", first_try=True, number=1),
            Attempt(snapshot="v2", first_try=False, number=2),
            Attempt(snapshot="v3", first_try=False, number=3),
        ]
        assert sleeps == pytest.approx([0.01, 0.05])

    def test_exhaustion(self) -> None:
        calls: list[int] = []

        def mutate(attempt: Attempt[str]) -> str:
            calls.append(attempt.number)
            raise ConflictError("stale")

        with pytest.raises(RetriesExhaustedError, match="4 attempt"):
            retry_on_conflict(mutate, "v1", lambda: "v", sleep=_no_sleep)
        assert calls == [1, 2, 3, 4]

    def test_exhaustion_chains_conflict(self) -> None:
        def mutate(attempt: Attempt[str]) -> str:
            raise ConflictError("stale")

        with pytest.raises(RetriesExhaustedError) as exc_info:
            retry_on_conflict(mutate, "v1", lambda: "v", Backoff(steps=1), sleep=_no_sleep)
        assert isinstance(exc_info.value.__cause__, ConflictError)

    def test_other_errors_not_retried(self) -> None:
        calls: list[int] = []

        def mutate(attempt: Attempt[str]) -> str:
            calls.append(attempt.number)
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            retry_on_conflict(mutate, "v1", lambda: "v", sleep=_no_sleep)
        assert calls == [1]

    def test_fetch_error_propagates(self) -> None:
        def mutate(attempt: Attempt[str]) -> str:
            raise ConflictError("stale")

        def fetch() -> str:
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            retry_on_conflict(mutate, "v1", fetch, sleep=_no_sleep)


def _no_sleep(_delay: float) -> None:
    pass
