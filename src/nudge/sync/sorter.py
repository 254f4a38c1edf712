"""Dependency sorter — orders Consumers so prerequisites sync first.

Each Consumer lists, in ``depends_on``, the Consumers that must sync before
it.  Only references inside the set being sorted count: a dependency on a
Consumer of some other Source is not a target of this trigger and cannot be
ordered against.

Algorithm (Kahn):
    1. Build edges ``dependency -> dependent`` for in-set references and
       count each node's in-degree.
    2. Seed a min-heap with every zero in-degree node.
    3. Pop the smallest key, emit it, and decrement its dependents; push
       any that reach zero.
    4. If nodes remain unemitted, they sit on (or behind) a cycle.

The heap makes the order a function of the input *set*: ties always go to
the smallest ``(namespace, name)``, whatever order the Consumers arrived in.
"""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from nudge._errors import CycleError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nudge.objects.model import Consumer, ObjectKey


def dependency_sort(consumers: Iterable[Consumer]) -> list[Consumer]:
    """Return *consumers* ordered so every dependency precedes its dependents.

    Duplicate keys collapse to the last occurrence.  A Consumer that depends
    on itself is a cycle.

    Raises:
        CycleError: If the in-set dependencies are cyclic.  No partial
            order is returned; ``members`` holds every unplaced Consumer.

    """
    nodes: dict[ObjectKey, Consumer] = {c.key: c for c in consumers}

    dependents: dict[ObjectKey, list[ObjectKey]] = {key: [] for key in nodes}
    in_degree: dict[ObjectKey, int] = dict.fromkeys(nodes, 0)
    for key, consumer in nodes.items():
        for dep in set(consumer.depends_on):
            if dep in nodes:
                dependents[dep].append(key)
                in_degree[key] += 1

    ready = [key for key, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    ordered: list[Consumer] = []
    while ready:
        key = heapq.heappop(ready)
        ordered.append(nodes[key])
        for dependent in dependents[key]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(ordered) != len(nodes):
        raise CycleError(key for key, degree in in_degree.items() if degree > 0)
    return ordered
