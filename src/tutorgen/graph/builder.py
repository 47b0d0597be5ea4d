"""Infer labelled relationships between abstractions.

Two evidence sources feed the graph:

1. Code references: the imports, calls, instantiations and base classes the
   parser found inside abstraction A's source ranges, resolved to abstraction
   B's symbols and modules. The referencing line can sharpen the label
   (configuration access, read or write verbs).
2. Text cues: verb phrases in A's summary and interaction sentences that end
   in B's name ("reads configuration from Settings").

Labels for one ordered pair are grouped by head verb. Within a group the most
specific (longest) phrase wins and evidence adds up; groups with different
head verbs stay as separate relationships. Inferred edges read "A uses B" and
are marked as dependencies, so B is explained before A.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass

from tutorgen.graph.models import Abstraction, AbstractionGraph, Relationship
from tutorgen.parsing.models import ParsedFile, Reference, ReferenceType
from tutorgen.parsing.registry import ParserRegistry
from tutorgen.repo.models import SourceFile

logger = logging.getLogger(__name__)

COLLABORATES = "collaborates with"
FALLBACK_LABEL = "uses"

# Symbol names too generic to count as a reference to a specific abstraction
GENERIC_SYMBOLS = frozenset(
    {
        "__init__",
        "__call__",
        "main",
        "run",
        "get",
        "set",
        "data",
        "value",
        "name",
        "config",
        "self",
        "init",
        "setup",
        "start",
        "stop",
        "close",
        "open",
        "load",
        "save",
        "update",
        "create",
        "delete",
        "result",
        "results",
        "items",
        "process",
        "handle",
        "execute",
        "build",
        "parse",
        "render",
        "logger",
        "default",
        "index",
        "test",
    }
)

REFERENCE_LABELS = {
    ReferenceType.IMPORTS: "imports",
    ReferenceType.INHERITS: "extends",
    ReferenceType.INSTANTIATES: "instantiates",
    ReferenceType.CALLS: "calls",
}

NAME_PARTS = re.compile(r"[^\w$]+")
CONFIG_WORDS = re.compile(
    r"\b(?:config|configuration|settings|options|env|environ)\b", re.IGNORECASE
)
WRITE_WORDS = re.compile(
    r"\b(?:write|writes|save|store|emit|publish|put|insert|append|persist|send)\w*",
    re.IGNORECASE,
)
READ_WORDS = re.compile(r"\b(?:read|load|fetch|query|find|lookup|select)\w*", re.IGNORECASE)
RENDER_WORDS = re.compile(r"\brender\w*", re.IGNORECASE)

CLAUSE_SPLIT = re.compile(r"[.;,:()]|\s(?:and|then|while|but|before|after)\s")
LEADING_FILLER = frozenset({"it", "this", "that", "which", "who", "also", "then", "and", "they"})
TRAILING_FILLER = frozenset({"the", "a", "an", "its", "their", "each", "every", "all"})
MAX_PHRASE_WORDS = 5
TEXT_CUE_WEIGHT = 2


def label_family(label: str) -> str:
    """Head verb of a label, used to group labels that describe one interaction."""
    head = label.strip().lower().split()[0] if label.strip() else ""
    if len(head) > 3 and head.endswith("s") and not head.endswith("ss"):
        head = head[:-1]
    return head


@dataclass
class _Candidate:
    label: str
    weight: int


@dataclass(frozen=True)
class _Targets:
    """Names a reference must contain to resolve to one abstraction."""

    symbols: frozenset[str]
    modules: frozenset[str]
    files: frozenset[str]


class RelationshipBuilder:
    """Builds the AbstractionGraph from abstractions and scanned files."""

    def __init__(
        self,
        files: list[SourceFile],
        parsed: dict[str, ParsedFile] | None = None,
    ):
        """Initialize the builder.

        Args:
            files: Scanned files the abstractions refer to.
            parsed: Parse results keyed by path. If None, files are parsed
                with the default ParserRegistry.
        """
        self.files = {f.path: f for f in files}
        self.parsed = parsed if parsed is not None else ParserRegistry().parse_all(files)

    def build(self, abstractions: list[Abstraction]) -> AbstractionGraph:
        """Infer relationships and return the frozen graph.

        Args:
            abstractions: Extracted abstractions, in declaration order.

        Returns:
            AbstractionGraph with deduplicated, non-contradictory edges.
        """
        evidence: dict[tuple[int, int], list[_Candidate]] = defaultdict(list)
        targets = [self._targets(a) for a in abstractions]

        for i, abstraction in enumerate(abstractions):
            for j, other in enumerate(abstractions):
                if i == j:
                    continue
                evidence[(i, j)].extend(self._code_references(abstraction, other, targets[j]))
                evidence[(i, j)].extend(self._text_cues(abstraction, other))

        merged = self._merge(evidence)
        relationships = self._resolve_contradictions(merged)
        relationships.sort(key=lambda r: (r.source, r.target, r.label))

        graph = AbstractionGraph(tuple(abstractions), tuple(relationships))
        logger.info(
            f"Built abstraction graph: {len(abstractions)} abstractions, "
            f"{len(relationships)} relationships"
        )
        return graph

    def _targets(self, abstraction: Abstraction) -> _Targets:
        symbols: set[str] = set()
        for symbol in abstraction.symbols:
            for part in symbol.split("."):
                if len(part) >= 3 and part.lower() not in GENERIC_SYMBOLS:
                    symbols.add(part)
        words = re.findall(r"[A-Za-z0-9]+", abstraction.name)
        camel = "".join(w[:1].upper() + w[1:] for w in words)
        if len(camel) >= 3 and camel.lower() not in GENERIC_SYMBOLS:
            symbols.add(camel)

        modules = set()
        for path in abstraction.files:
            stem = path.rsplit("/", 1)[-1].split(".", 1)[0]
            if len(stem) >= 3 and stem.lower() not in GENERIC_SYMBOLS:
                modules.add(stem)
        return _Targets(frozenset(symbols), frozenset(modules), frozenset(abstraction.files))

    def _code_references(
        self,
        abstraction: Abstraction,
        other: Abstraction,
        targets: _Targets,
    ) -> list[_Candidate]:
        """Parsed imports and references from abstraction that resolve to other."""
        candidates: list[_Candidate] = []
        if not targets.symbols and not targets.modules:
            return candidates

        imported_from: set[str] = set()
        for location in abstraction.locations:
            parsed = self.parsed.get(location.path)
            if parsed is None:
                continue

            # Imports are file-level; a file shared with other proves nothing
            if location.path not in imported_from and location.path not in targets.files:
                imported_from.add(location.path)
                for imported in parsed.imports:
                    if self._resolves(imported, targets.symbols | targets.modules):
                        candidates.append(_Candidate(REFERENCE_LABELS[ReferenceType.IMPORTS], 1))

            for reference in parsed.references:
                if not location.start_line <= reference.line <= location.end_line:
                    continue
                if self._inside(other, location.path, reference.line):
                    continue
                if not self._resolves(reference.target, targets.symbols):
                    continue
                label = self._label(reference, location.path, other)
                candidates.append(_Candidate(label, 1))
        return candidates

    def _resolves(self, name: str, known: frozenset[str]) -> bool:
        return any(part in known for part in NAME_PARTS.split(name) if part)

    def _inside(self, abstraction: Abstraction, path: str, lineno: int) -> bool:
        return any(
            loc.path == path and loc.start_line <= lineno <= loc.end_line
            for loc in abstraction.locations
        )

    def _label(self, reference: Reference, path: str, other: Abstraction) -> str:
        """Label for a resolved reference, sharpened by the text of its line."""
        label = REFERENCE_LABELS.get(reference.reference_type, FALLBACK_LABEL)
        if reference.reference_type is ReferenceType.INHERITS:
            return label

        source = self.files.get(path)
        lines = source.lines(reference.line, reference.line) if source else []
        line = lines[0] if lines else ""

        if other.category == "Configuration" and CONFIG_WORDS.search(line):
            return "reads configuration from"
        if reference.reference_type is ReferenceType.INSTANTIATES:
            return label
        if WRITE_WORDS.search(line):
            return "writes to"
        if READ_WORDS.search(line):
            return "reads from"
        if RENDER_WORDS.search(line):
            return "renders"
        return label

    def _text_cues(self, abstraction: Abstraction, other: Abstraction) -> list[_Candidate]:
        """Verb phrases from summary and interaction sentences that end in other's name."""
        candidates: list[_Candidate] = []
        name_pattern = re.compile(rf"\b{re.escape(other.name)}\b", re.IGNORECASE)
        own_words = {w.lower() for w in re.findall(r"\w+", abstraction.name)}

        for text in (abstraction.summary, *abstraction.interactions):
            for match in name_pattern.finditer(text):
                clause = CLAUSE_SPLIT.split(text[: match.start()])[-1]
                words = clause.split()
                while words and (
                    words[0].lower() in LEADING_FILLER or words[0].lower() in own_words
                ):
                    words.pop(0)
                while words and words[-1].lower() in TRAILING_FILLER:
                    words.pop()
                if not words or len(words) > MAX_PHRASE_WORDS:
                    continue
                phrase = " ".join(w.lower() for w in words)
                if not re.match(r"^[a-z]", phrase):
                    continue
                candidates.append(_Candidate(phrase, TEXT_CUE_WEIGHT))
        return candidates

    def _merge(
        self, evidence: dict[tuple[int, int], list[_Candidate]]
    ) -> dict[tuple[int, int], dict[str, _Candidate]]:
        """Group candidates per pair by head verb, keeping the most specific label."""
        merged: dict[tuple[int, int], dict[str, _Candidate]] = {}
        for pair in sorted(evidence):
            families: dict[str, _Candidate] = {}
            for candidate in evidence[pair]:
                family = label_family(candidate.label)
                current = families.get(family)
                if current is None:
                    families[family] = _Candidate(candidate.label, candidate.weight)
                    continue
                current.weight += candidate.weight
                if (len(candidate.label), _reverse_key(candidate.label)) > (
                    len(current.label),
                    _reverse_key(current.label),
                ):
                    current.label = candidate.label
            # The generic fallback adds nothing next to a specific label
            if len(families) > 1 and label_family(FALLBACK_LABEL) in families:
                generic = families.pop(label_family(FALLBACK_LABEL))
                strongest = max(families.values(), key=lambda c: (c.weight, c.label))
                strongest.weight += generic.weight
            if families:
                merged[pair] = families
        return merged

    def _resolve_contradictions(
        self, merged: dict[tuple[int, int], dict[str, _Candidate]]
    ) -> list[Relationship]:
        """Relabel mirrored edges that share a head verb.

        A configures B together with B configures A reads as a contradiction.
        The weaker direction (ties: the higher source index) is relabelled
        "collaborates with". That edge is not a dependency: its source is
        explained first, which agrees with the stronger edge it mirrors.
        """
        for (i, j) in sorted(merged):
            if i > j or (j, i) not in merged:
                continue
            forward, backward = merged[(i, j)], merged[(j, i)]
            for family in sorted(set(forward) & set(backward)):
                if family == label_family(COLLABORATES):
                    continue
                weaker = backward if backward[family].weight <= forward[family].weight else forward
                candidate = weaker.pop(family)
                logger.debug(f"Relabelling mirrored '{candidate.label}' edge between {i} and {j}")
                existing = weaker.get(label_family(COLLABORATES))
                if existing is not None:
                    existing.weight += candidate.weight
                else:
                    weaker[label_family(COLLABORATES)] = _Candidate(COLLABORATES, candidate.weight)

        relationships = []
        for (i, j), families in merged.items():
            for candidate in families.values():
                relationships.append(
                    Relationship(
                        i,
                        j,
                        candidate.label,
                        candidate.weight,
                        dependency=candidate.label != COLLABORATES,
                    )
                )
        return relationships


def _reverse_key(label: str) -> tuple[int, ...]:
    # Prefer the alphabetically smaller label on equal length
    return tuple(-ord(c) for c in label)
