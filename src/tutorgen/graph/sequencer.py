"""Linear chapter order over the abstraction graph.

Kahn's algorithm over the "is dependency of" relation: foundations come
before the abstractions that build on them. A dependency edge ("Cache imports
Store") puts its target first; any other edge puts its source first (see
Relationship.precedence). Ties between ready abstractions go to a stable
secondary key. When every remaining abstraction waits on another,
the graph has a cycle; the sequencer drops the ordering edge whose removal
releases the most abstractions, records a CycleDetectedWarning and carries on.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field

from tutorgen.errors import CycleDetectedWarning
from tutorgen.graph.models import AbstractionGraph

logger = logging.getLogger(__name__)

TIE_BREAKS = ("declaration", "alphabetical")


@dataclass(frozen=True)
class SequenceResult:
    """Outcome of sequencing.

    Attributes:
        order: Arena indices in chapter order.
        broken_edges: Ordering edges (first, then) dropped to break cycles.
        warnings: One CycleDetectedWarning per dropped edge.
    """

    order: tuple[int, ...]
    broken_edges: tuple[tuple[int, int], ...] = ()
    warnings: tuple[CycleDetectedWarning, ...] = field(default=(), compare=False)


class ChapterSequencer:
    """Pure function from an AbstractionGraph to a chapter order."""

    def __init__(self, tie_break: str = "declaration"):
        """Initialize the sequencer.

        Args:
            tie_break: "declaration" keeps extraction order among ready
                abstractions; "alphabetical" sorts them by name.
        """
        if tie_break not in TIE_BREAKS:
            raise ValueError(f"Unknown tie_break '{tie_break}', expected one of {TIE_BREAKS}")
        self.tie_break = tie_break

    def _key(self, graph: AbstractionGraph, index: int) -> tuple:
        if self.tie_break == "alphabetical":
            return (graph.abstractions[index].name.lower(), index)
        return (index,)

    def sequence(self, graph: AbstractionGraph) -> SequenceResult:
        """Compute the chapter order.

        Args:
            graph: Frozen abstraction graph.

        Returns:
            SequenceResult with a total order over every abstraction.
        """
        size = len(graph)
        successors: dict[int, set[int]] = {i: set() for i in range(size)}
        for rel in graph.relationships:
            first, then = rel.precedence
            successors[first].add(then)

        in_degree = [0] * size
        for targets in successors.values():
            for target in targets:
                in_degree[target] += 1

        ready = [(self._key(graph, i), i) for i in range(size) if in_degree[i] == 0]
        heapq.heapify(ready)
        placed = [False] * size
        order: list[int] = []
        broken: list[tuple[int, int]] = []
        warnings: list[CycleDetectedWarning] = []

        while len(order) < size:
            if not ready:
                source, target, unblocked = self._choose_edge(graph, successors, in_degree, placed)
                successors[source].discard(target)
                in_degree[target] -= 1
                broken.append((source, target))
                warning = CycleDetectedWarning(
                    graph.abstractions[source].name,
                    graph.abstractions[target].name,
                    unblocked,
                )
                warnings.append(warning)
                logger.warning(str(warning))
                if in_degree[target] == 0:
                    heapq.heappush(ready, (self._key(graph, target), target))
                continue

            _, node = heapq.heappop(ready)
            placed[node] = True
            order.append(node)
            for target in sorted(successors[node]):
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    heapq.heappush(ready, (self._key(graph, target), target))

        return SequenceResult(tuple(order), tuple(broken), tuple(warnings))

    def _choose_edge(
        self,
        graph: AbstractionGraph,
        successors: dict[int, set[int]],
        in_degree: list[int],
        placed: list[bool],
    ) -> tuple[int, int, int]:
        """Pick the remaining edge whose removal unblocks the most abstractions.

        Ties go to the smallest (source key, target key).

        Returns:
            (source, target, number of abstractions released).
        """
        best: tuple[int, tuple, tuple, int, int] | None = None
        for source in range(len(graph)):
            if placed[source]:
                continue
            for target in successors[source]:
                unblocked = self._cascade(successors, in_degree, placed, source, target)
                candidate = (
                    -unblocked,
                    self._key(graph, source),
                    self._key(graph, target),
                    source,
                    target,
                )
                if best is None or candidate < best:
                    best = candidate
        if best is None:
            raise RuntimeError("No remaining edge while abstractions are blocked")
        return best[3], best[4], -best[0]

    def _cascade(
        self,
        successors: dict[int, set[int]],
        in_degree: list[int],
        placed: list[bool],
        source: int,
        target: int,
    ) -> int:
        """Count abstractions that become placeable once source -> target is gone."""
        degree = list(in_degree)
        degree[target] -= 1
        if degree[target] != 0:
            return 0
        released = 0
        stack = [target]
        seen = set(stack)
        while stack:
            node = stack.pop()
            released += 1
            for nxt in successors[node]:
                if placed[nxt] or (node == source and nxt == target):
                    continue
                degree[nxt] -= 1
                if degree[nxt] == 0 and nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return released
