"""Chapter data models and the chapter state machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tutorgen.constants.generation import CHAPTER_FILENAME_FORMAT
from tutorgen.graph.models import Abstraction, AbstractionGraph, SourceLocation
from tutorgen.parsing.flow import ControlFlow
from tutorgen.repo.models import SourceFile


def chapter_filename(ordinal: int) -> str:
    """File name of the chapter with the given 1-based ordinal."""
    return CHAPTER_FILENAME_FORMAT.format(ordinal)


class SectionKind(Enum):
    """The seven chapter sections, in the order they appear."""

    PROBLEM = "problem"
    CONCEPT = "concept"
    USAGE = "usage"
    WALKTHROUGH = "walkthrough"
    INTEGRATION = "integration"
    PRACTICES = "practices"
    CONCLUSION = "conclusion"

    @property
    def header(self) -> str:
        return SECTION_HEADERS[self]

    @property
    def title(self) -> str:
        return self.header.removeprefix("### ")


SECTION_HEADERS = {
    SectionKind.PROBLEM: "### Problem & Motivation",
    SectionKind.CONCEPT: "### Core Concept Explanation",
    SectionKind.USAGE: "### Practical Usage Examples",
    SectionKind.WALKTHROUGH: "### Internal Implementation Walkthrough",
    SectionKind.INTEGRATION: "### System Integration",
    SectionKind.PRACTICES: "### Best Practices & Tips",
    SectionKind.CONCLUSION: "### Chapter Conclusion",
}


@dataclass(frozen=True)
class Section:
    """Generated body of one chapter section."""

    kind: SectionKind
    body: str


@dataclass(frozen=True)
class CodeExample:
    """A code example cited from a scanned file.

    Attributes:
        chapter_ordinal: Chapter the example belongs to.
        language: Fence language of the code.
        description: One-line description for the examples index.
        code: Verbatim source lines.
        location: Where the lines come from.
    """

    chapter_ordinal: int
    language: str
    description: str
    code: str
    location: SourceLocation

    @property
    def citation(self) -> str:
        loc = self.location
        return f"`{loc.path}` (lines {loc.start_line}-{loc.end_line})"


@dataclass(frozen=True)
class ChapterLink:
    """Navigation link to a neighbouring chapter."""

    ordinal: int
    title: str
    filename: str
    direction: str  # "previous" or "next"


@dataclass(frozen=True)
class ChapterRef:
    """Entry of the chapter listing shared by every chapter plan."""

    ordinal: int
    abstraction_id: str
    title: str

    @property
    def filename(self) -> str:
        return chapter_filename(self.ordinal)


class ChapterState(Enum):
    """Lifecycle of a single chapter."""

    PENDING = "pending"
    DRAFTING = "drafting"
    REVIEWED = "reviewed"
    FINALIZED = "finalized"
    FAILED = "failed"


CHAPTER_TRANSITIONS: dict[ChapterState, frozenset[ChapterState]] = {
    ChapterState.PENDING: frozenset({ChapterState.DRAFTING}),
    ChapterState.DRAFTING: frozenset({ChapterState.REVIEWED, ChapterState.FAILED}),
    ChapterState.REVIEWED: frozenset({ChapterState.FINALIZED, ChapterState.DRAFTING}),
    ChapterState.FINALIZED: frozenset(),
    ChapterState.FAILED: frozenset(),
}


@dataclass
class Chapter:
    """One tutorial chapter.

    Attributes:
        ordinal: 1-based position in the tutorial.
        title: Chapter title (the abstraction name).
        abstraction_id: Abstraction the chapter explains.
        sections: Generated sections, in SectionKind order.
        links: Previous/next navigation links.
        code_examples: Cited code examples.
        diagram: Mermaid sequence diagram, or None when omitted.
        state: Current lifecycle state.
        incomplete: True for placeholder chapters.
        attempts: Drafting attempts made.
    """

    ordinal: int
    title: str
    abstraction_id: str
    sections: tuple[Section, ...] = ()
    links: tuple[ChapterLink, ...] = ()
    code_examples: tuple[CodeExample, ...] = ()
    diagram: str | None = None
    state: ChapterState = ChapterState.PENDING
    incomplete: bool = False
    attempts: int = 0

    @property
    def filename(self) -> str:
        return chapter_filename(self.ordinal)

    def transition(self, new_state: ChapterState) -> None:
        """Move to new_state.

        Raises:
            ValueError: If the transition is not allowed.
        """
        if new_state not in CHAPTER_TRANSITIONS[self.state]:
            raise ValueError(
                f"Illegal chapter transition {self.state.value} -> {new_state.value} "
                f"for chapter {self.ordinal}"
            )
        self.state = new_state

    def section(self, kind: SectionKind) -> Section | None:
        for section in self.sections:
            if section.kind is kind:
                return section
        return None


@dataclass(frozen=True)
class ChapterPlan:
    """Everything needed to generate one chapter, frozen before fan-out.

    Attributes:
        ordinal: 1-based chapter position.
        abstraction: Abstraction the chapter explains.
        graph: Frozen abstraction graph.
        files: Scanned files the abstraction's locations point into.
        chapters: Listing of every chapter, in order.
        project_name: Name of the documented project.
        previous: Link to the previous chapter, if any.
        next: Link to the next chapter, if any.
        flow: Traced control flow of the abstraction's entry point.
        diagram: Sequence diagram, or None when omitted.
        neighbours: (chapter, relation sentence) for each related abstraction.
    """

    ordinal: int
    abstraction: Abstraction
    graph: AbstractionGraph
    files: tuple[SourceFile, ...]
    chapters: tuple[ChapterRef, ...]
    project_name: str = ""
    previous: ChapterLink | None = None
    next: ChapterLink | None = None
    flow: ControlFlow | None = None
    diagram: str | None = None
    neighbours: tuple[tuple[ChapterRef, str], ...] = ()

    @property
    def title(self) -> str:
        return self.abstraction.name

    @property
    def filename(self) -> str:
        return chapter_filename(self.ordinal)

    @property
    def links(self) -> tuple[ChapterLink, ...]:
        return tuple(link for link in (self.previous, self.next) if link is not None)

    def file(self, path: str) -> SourceFile | None:
        for source in self.files:
            if source.path == path:
                return source
        return None
