"""Cross-reference linking and markdown rendering of the tutorial file set."""

from __future__ import annotations

import logging
import re

from tutorgen.constants.generation import CODE_EXAMPLES_FILENAME, INDEX_FILENAME
from tutorgen.errors import BrokenLinkError
from tutorgen.generation.models import Chapter, SectionKind, chapter_filename
from tutorgen.graph.models import AbstractionGraph

logger = logging.getLogger(__name__)

# [Text](chapter:<id>), [Text](chapterN.md), [Text](chapter_NN.md)
REFERENCE_PATTERN = re.compile(r"\[([^\]\n]*)\]\((chapter:([^)\s]+)|chapter_?(\d+)\.md)\)")
LOCAL_LINK_PATTERN = re.compile(r"\]\((chapter_\d+\.md|index\.md|code_examples\.md)(?:#[^)]*)?\)")


class CrossReferenceLinker:
    """Resolves chapter references and renders the final markdown files."""

    def __init__(
        self,
        project_name: str,
        graph: AbstractionGraph,
        chapters: list[Chapter],
        overview: str,
        architecture_diagram: str | None = None,
        relationship_diagram: str | None = None,
    ):
        """Initialize the linker.

        Args:
            project_name: Name of the documented project.
            graph: Frozen abstraction graph.
            chapters: Chapters in final order.
            overview: Overview paragraph for index.md.
            architecture_diagram: System architecture mermaid diagram.
            relationship_diagram: Component relationship mermaid diagram.
        """
        self.project_name = project_name
        self.graph = graph
        self.chapters = sorted(chapters, key=lambda c: c.ordinal)
        self.overview = overview
        self.architecture_diagram = architecture_diagram
        self.relationship_diagram = relationship_diagram
        self._by_id = {c.abstraction_id: c.filename for c in self.chapters}

    def link(self) -> dict[str, str]:
        """Render every output file.

        Returns:
            Mapping of file name to markdown content.

        Raises:
            BrokenLinkError: If a chapter reference cannot be resolved.
        """
        files: dict[str, str] = {}
        for chapter in self.chapters:
            files[chapter.filename] = self.render_chapter(chapter)
        files[INDEX_FILENAME] = self.render_index()
        files[CODE_EXAMPLES_FILENAME] = self.render_code_examples()
        self.verify(files)
        logger.info(f"Linked {len(self.chapters)} chapters")
        return files

    def resolve(self, target: str, source: str) -> str:
        """File name for a chapter reference target.

        Raises:
            BrokenLinkError: For an unknown id or an out-of-range number.
        """
        if target.startswith("chapter:"):
            abstraction_id = target.removeprefix("chapter:")
            if abstraction_id not in self._by_id:
                raise BrokenLinkError(
                    f"Unresolved chapter reference '{target}' in {source}",
                    target=target,
                    source=source,
                )
            return self._by_id[abstraction_id]

        number = int(re.sub(r"\D", "", target))
        if not 1 <= number <= len(self.chapters):
            raise BrokenLinkError(
                f"Chapter reference '{target}' in {source} is out of range "
                f"(tutorial has {len(self.chapters)} chapters)",
                target=target,
                source=source,
            )
        return chapter_filename(number)

    def rewrite_references(self, text: str, source: str) -> str:
        """Rewrite every chapter reference in text to its chapter file."""

        def replace(match: re.Match) -> str:
            return f"[{match.group(1)}]({self.resolve(match.group(2), source)})"

        return REFERENCE_PATTERN.sub(replace, text)

    def _navigation(self, chapter: Chapter) -> str:
        parts = []
        for link in chapter.links:
            if link.direction == "previous":
                parts.append(f"Previous: [{link.title}]({link.filename})")
        parts.append(f"[Tutorial index]({INDEX_FILENAME})")
        for link in chapter.links:
            if link.direction == "next":
                parts.append(f"Next: [{link.title}]({link.filename})")
        return " | ".join(parts)

    def render_chapter(self, chapter: Chapter) -> str:
        """Markdown for one chapter."""
        source = chapter.filename
        navigation = self._navigation(chapter)
        lines = [f"# Chapter {chapter.ordinal}: {chapter.title}", "", navigation, ""]

        for kind in SectionKind:
            section = chapter.section(kind)
            body = section.body.strip() if section else ""
            lines.extend([kind.header, "", self.rewrite_references(body, source), ""])

            if kind is SectionKind.USAGE:
                for number, example in enumerate(chapter.code_examples, start=1):
                    lines.extend(
                        [
                            f"#### Example {chapter.ordinal}.{number}: {example.description}",
                            "",
                            f"```{example.language}",
                            example.code,
                            "```",
                            "",
                            f"*Source: {example.citation}*",
                            "",
                        ]
                    )
            if kind is SectionKind.WALKTHROUGH and chapter.diagram:
                lines.extend(["```mermaid", chapter.diagram, "```", ""])

        lines.extend(["---", "", navigation, ""])
        return "\n".join(lines)

    def render_index(self) -> str:
        """Markdown for index.md."""
        lines = [f"# Tutorial: {self.project_name}", "", self.overview.strip(), ""]

        for heading, diagram in (
            ("## System Architecture", self.architecture_diagram),
            ("## Component Relationships", self.relationship_diagram),
        ):
            lines.extend([heading, ""])
            if diagram:
                lines.extend(["```mermaid", diagram, "```", ""])
            else:
                lines.extend(["*Diagram unavailable.*", ""])

        lines.extend(["## Table of Contents", ""])
        for chapter in self.chapters:
            summary = " ".join(self.graph.get(chapter.abstraction_id).summary.split())
            marker = " (incomplete)" if chapter.incomplete else ""
            lines.append(
                f"{chapter.ordinal}. [{chapter.title}]({chapter.filename}){marker} - {summary}"
            )
        lines.extend(["", f"All cited snippets: [Code Examples]({CODE_EXAMPLES_FILENAME})", ""])
        return self.rewrite_references("\n".join(lines), INDEX_FILENAME)

    def render_code_examples(self) -> str:
        """Markdown for code_examples.md."""
        lines = ["# Code Examples", "", f"Back to the [tutorial index]({INDEX_FILENAME}).", ""]
        for chapter in self.chapters:
            heading = f"## Chapter {chapter.ordinal}: [{chapter.title}]({chapter.filename})"
            lines.extend([heading, ""])
            if not chapter.code_examples:
                lines.extend(["*No cited examples.*", ""])
                continue
            for number, example in enumerate(chapter.code_examples, start=1):
                lines.append(
                    f"- **Example {chapter.ordinal}.{number}** (`{example.language}`): "
                    f"{example.description} - {example.citation}"
                )
            lines.append("")
        return "\n".join(lines)

    def verify(self, files: dict[str, str]) -> None:
        """Check that every local markdown link resolves to a produced file.

        Raises:
            BrokenLinkError: On the first dangling link.
        """
        for name in sorted(files):
            for target in LOCAL_LINK_PATTERN.findall(files[name]):
                if target not in files:
                    raise BrokenLinkError(
                        f"Broken link to '{target}' in {name}", target=target, source=name
                    )
