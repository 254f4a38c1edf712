"""Conflict retry — re-run a mutation against fresh state until it sticks.

``retry_on_conflict`` is a plain higher-order function.  Everything it needs
is passed in: the mutation, how to obtain fresh state, the backoff policy,
and (for tests) how to sleep and where randomness comes from.  Each call to
the mutation receives an explicit ``Attempt`` describing which state to use,
instead of the mutation tracking "is this my first try?" itself.

Attempt sequence::

    Attempt(snapshot=initial, first_try=True,  number=1)
      -> ConflictError -> sleep(delay_1)
    Attempt(snapshot=fetch(), first_try=False, number=2)
      -> ConflictError -> sleep(delay_2)
    ...
    -> RetriesExhaustedError after ``backoff.steps`` attempts

Any error other than ``ConflictError`` (including one raised by ``fetch``)
propagates immediately.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from nudge._errors import ConflictError, RetriesExhaustedError


@dataclass(frozen=True, slots=True)
class Backoff:
    """Exponential backoff policy.

    Attributes:
        steps: Maximum number of attempts (including the first).
        duration: Delay before the second attempt, in seconds.
        factor: Multiplier applied to the delay after each retry.
        jitter: Up to this fraction of the delay is added at random.

    """

    steps: int = 4
    duration: float = 0.01
    factor: float = 5.0
    jitter: float = 0.1

    def delays(self, rand: Callable[[], float] = random.random) -> Iterator[float]:
        """Yield the sleep before each retry (``steps - 1`` values)."""
        delay = self.duration
        for _ in range(max(self.steps - 1, 0)):
            yield delay + delay * self.jitter * rand() if self.jitter > 0 else delay
            delay *= self.factor


DEFAULT_BACKOFF = Backoff()


@dataclass(frozen=True, slots=True)
class Attempt[T]:
    """The state one mutation attempt should work from.

    Attributes:
        snapshot: Caller-provided state on the first try, freshly fetched
            state on every retry.
        first_try: True only for the first attempt.
        number: 1-based attempt counter.

    """

    snapshot: T
    first_try: bool
    number: int


def retry_on_conflict[T, R](
    mutate: Callable[[Attempt[T]], R],
    initial: T,
    fetch: Callable[[], T],
    backoff: Backoff = DEFAULT_BACKOFF,
    *,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
) -> tuple[R, int]:
    """Run *mutate* until it succeeds without a conflict.

    Returns:
        ``(result, attempts)`` from the first successful attempt.

    Raises:
        RetriesExhaustedError: Every attempt conflicted.
        Exception: Whatever non-conflict error *mutate* or *fetch* raised.

    """
    attempt = Attempt(snapshot=initial, first_try=True, number=1)
    delays = backoff.delays(rand)
    while True:
        try:
            return mutate(attempt), attempt.number
        except ConflictError as exc:
            delay = next(delays, None)
            if delay is None:
                msg = f"still conflicting after {attempt.number} attempt(s): {exc}"
                raise RetriesExhaustedError(msg) from exc
            sleep(delay)
        attempt = Attempt(snapshot=fetch(), first_try=False, number=attempt.number + 1)
