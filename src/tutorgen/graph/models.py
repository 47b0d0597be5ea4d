"""Data models for the abstraction graph.

Abstractions live in an indexed arena; relationships refer to them by index,
so cycles in the graph never become reference cycles between objects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import networkx as nx

from tutorgen.constants.generation import VALID_CATEGORIES


def slugify(name: str) -> str:
    """Stable identifier for a display name ("File Filter" -> "file-filter")."""
    # Split camelCase before lowercasing so "FileFilter" reads as two words
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name)
    slug = re.sub(r"[^a-z0-9]+", "-", spaced.lower()).strip("-")
    return slug or "abstraction"


def normalize_name(name: str) -> str:
    """Comparison key for near-identical names.

    Case, whitespace, punctuation and separators are ignored, as is a
    trailing plural "s": "File Filters", "file_filter" and "FileFilter"
    all normalize to "filefilter".
    """
    key = re.sub(r"[^a-z0-9]", "", name.lower())
    if len(key) > 3 and key.endswith("s") and not key.endswith("ss"):
        key = key[:-1]
    return key


@dataclass(frozen=True, order=True)
class SourceLocation:
    """A line range in a scanned file (1-indexed, inclusive)."""

    path: str
    start_line: int = 1
    end_line: int = 1

    def __post_init__(self):
        if self.start_line < 1 or self.end_line < self.start_line:
            raise ValueError(
                f"Invalid line range {self.start_line}-{self.end_line} for {self.path}"
            )

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.path}:{self.start_line}"
        return f"{self.path}:{self.start_line}-{self.end_line}"


@dataclass(frozen=True)
class Abstraction:
    """A named component of the documented codebase.

    Attributes:
        id: Stable slug of the name.
        name: Display name.
        summary: One-line responsibility summary.
        category: One of VALID_CATEGORIES.
        locations: Source ranges the abstraction derives from (never empty).
        symbols: Code symbols that belong to the abstraction.
        interactions: Short sentences describing how it uses other abstractions.
        reproducible: False when produced by a non-deterministic generative call.
    """

    id: str
    name: str
    summary: str
    category: str
    locations: tuple[SourceLocation, ...]
    symbols: tuple[str, ...] = ()
    interactions: tuple[str, ...] = ()
    reproducible: bool = True

    def __post_init__(self):
        if not self.id:
            raise ValueError("Abstraction id must not be empty")
        if self.category not in VALID_CATEGORIES:
            raise ValueError(
                f"Invalid category '{self.category}' for {self.name}. "
                f"Valid categories: {', '.join(sorted(VALID_CATEGORIES))}"
            )
        if not self.locations:
            raise ValueError(f"Abstraction {self.name} must map to at least one source file")
        object.__setattr__(self, "locations", tuple(self.locations))
        object.__setattr__(self, "symbols", tuple(self.symbols))
        object.__setattr__(self, "interactions", tuple(self.interactions))

    @property
    def files(self) -> tuple[str, ...]:
        """Distinct file paths in location order."""
        return tuple(dict.fromkeys(loc.path for loc in self.locations))


@dataclass(frozen=True)
class Relationship:
    """A directed, labelled edge between two abstractions.

    Attributes:
        source: Arena index of the abstraction that acts.
        target: Arena index of the abstraction acted upon.
        label: Verb phrase, e.g. "reads configuration from".
        weight: Evidence count; not part of equality.
        dependency: True when source depends on target ("Cache imports
            Store"), so the target is explained first. False when the edge
            is already written as "is explained before".
    """

    source: int
    target: int
    label: str
    weight: int = field(default=1, compare=False)
    dependency: bool = False

    def __post_init__(self):
        if self.source == self.target:
            raise ValueError(f"Self-loop on abstraction index {self.source}")
        if self.source < 0 or self.target < 0:
            raise ValueError(f"Negative endpoint in {self.source} -> {self.target}")
        if not self.label.strip():
            raise ValueError("Relationship label must not be empty")

    @property
    def precedence(self) -> tuple[int, int]:
        """(first, then): the abstraction explained first, then the other."""
        if self.dependency:
            return (self.target, self.source)
        return (self.source, self.target)


@dataclass(frozen=True)
class AbstractionGraph:
    """Arena of abstractions plus index-pair relationships."""

    abstractions: tuple[Abstraction, ...]
    relationships: tuple[Relationship, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "abstractions", tuple(self.abstractions))
        object.__setattr__(self, "relationships", tuple(self.relationships))
        self.check_integrity()

    def check_integrity(self) -> None:
        """Validate ids and edge endpoints.

        Raises:
            ValueError: On duplicate ids or an endpoint outside the arena.
        """
        seen: set[str] = set()
        for abstraction in self.abstractions:
            if abstraction.id in seen:
                raise ValueError(f"Duplicate abstraction id '{abstraction.id}'")
            seen.add(abstraction.id)

        size = len(self.abstractions)
        for rel in self.relationships:
            if rel.source >= size or rel.target >= size:
                raise ValueError(
                    f"Relationship {rel.source} -> {rel.target} references a missing "
                    f"abstraction (arena has {size})"
                )

    def __len__(self) -> int:
        return len(self.abstractions)

    def index_of(self, abstraction_id: str) -> int:
        for i, abstraction in enumerate(self.abstractions):
            if abstraction.id == abstraction_id:
                return i
        raise KeyError(abstraction_id)

    def get(self, abstraction_id: str) -> Abstraction:
        return self.abstractions[self.index_of(abstraction_id)]

    def successors(self, index: int) -> list[int]:
        return sorted({r.target for r in self.relationships if r.source == index})

    def predecessors(self, index: int) -> list[int]:
        return sorted({r.source for r in self.relationships if r.target == index})

    def neighbors(self, index: int) -> list[int]:
        return sorted(set(self.successors(index)) | set(self.predecessors(index)))

    def edges_for(self, index: int) -> list[Relationship]:
        """Relationships touching index, in arena order."""
        return [r for r in self.relationships if index in (r.source, r.target)]

    def to_networkx(self) -> nx.DiGraph:
        """Collapse the graph into a networkx DiGraph.

        Parallel relationships become one edge carrying all labels.
        """
        G = nx.DiGraph()
        for i, abstraction in enumerate(self.abstractions):
            G.add_node(i, id=abstraction.id, name=abstraction.name, category=abstraction.category)
        for rel in self.relationships:
            if G.has_edge(rel.source, rel.target):
                G.edges[rel.source, rel.target]["labels"].append(rel.label)
                G.edges[rel.source, rel.target]["weight"] += rel.weight
            else:
                G.add_edge(rel.source, rel.target, labels=[rel.label], weight=rel.weight)
        return G

    def is_acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self.to_networkx())
