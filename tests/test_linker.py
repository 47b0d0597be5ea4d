"""Cross-reference linking tests."""

import asyncio
import re

import pytest

from tutorgen.errors import BrokenLinkError
from tutorgen.generation import (
    ChapterGenerator,
    CrossReferenceLinker,
    Section,
    SectionKind,
    TutorialOrchestrator,
)
from tutorgen.parsing import ParserRegistry


@pytest.fixture
def chapters(sample_files, sample_graph):
    """Static chapters for the sample graph in declaration order."""
    parsed = ParserRegistry().parse_all(sample_files)
    plans = TutorialOrchestrator().plan_chapters(
        "Sample", sample_graph, (0, 1, 2), sample_files, parsed
    )
    generator = ChapterGenerator()

    async def generate_all():
        return [await generator.generate(plan) for plan in plans]

    return asyncio.run(generate_all())


def make_linker(sample_graph, chapters, **kwargs):
    return CrossReferenceLinker(
        project_name="Sample",
        graph=sample_graph,
        chapters=chapters,
        overview="Sample overview.",
        **kwargs,
    )


def test_link_produces_the_file_set(sample_graph, chapters):
    """One file per chapter plus the index and the examples page."""
    files = make_linker(sample_graph, chapters).link()

    assert sorted(files) == [
        "chapter_01.md",
        "chapter_02.md",
        "chapter_03.md",
        "code_examples.md",
        "index.md",
    ]


def test_every_local_link_resolves(sample_graph, chapters):
    """No link in the output points at a missing file."""
    files = make_linker(sample_graph, chapters).link()

    for content in files.values():
        assert "(chapter:" not in content
        for target in re.findall(r"\]\(((?:chapter_\d+|index|code_examples)\.md)\)", content):
            assert target in files


def test_chapter_navigation_and_rewritten_references(sample_graph, chapters):
    """Chapters link to their neighbours and references point at chapter files."""
    content = make_linker(sample_graph, chapters).link()["chapter_02.md"]

    assert content.startswith("# Chapter 2: Scanner\n")
    assert "Previous: [Report](chapter_01.md)" in content
    assert "Next: [Settings](chapter_03.md)" in content
    assert "[Report](chapter_01.md))" in content
    headers = [line for line in content.splitlines() if line.startswith("### ")]
    assert headers == [kind.header for kind in SectionKind]
    assert "```mermaid\nsequenceDiagram" in content
    assert "#### Example 2.1: Class `Scanner`" in content


def test_index_lists_chapters_and_diagrams(sample_graph, chapters):
    """index.md carries the overview, both diagrams and the table of contents."""
    linker = make_linker(
        sample_graph,
        chapters,
        architecture_diagram="graph TB\n    a --> b",
        relationship_diagram=None,
    )

    index = linker.link()["index.md"]

    assert index.startswith("# Tutorial: Sample\n\nSample overview.")
    assert "```mermaid\ngraph TB" in index
    assert "*Diagram unavailable.*" in index
    assert "1. [Report](chapter_01.md) - Builds a report of the scanned files." in index
    assert "[Code Examples](code_examples.md)" in index


def test_code_examples_page_cites_sources(sample_graph, chapters):
    """Every example is listed with its file and line range."""
    page = make_linker(sample_graph, chapters).link()["code_examples.md"]

    assert "## Chapter 2: [Scanner](chapter_02.md)" in page
    assert "`app/scanner.py` (lines 6-20)" in page


def test_numbered_references_are_normalised(sample_graph, chapters):
    """chapterN.md style references become chapter_NN.md."""
    linker = make_linker(sample_graph, chapters)

    assert linker.rewrite_references("[Two](chapter2.md)", "x") == "[Two](chapter_02.md)"


def test_unknown_reference_raises(sample_graph, chapters):
    """A reference to an id with no chapter is a BrokenLinkError."""
    chapters[0].sections = (Section(SectionKind.PROBLEM, "See [Ghost](chapter:ghost)."),)

    with pytest.raises(BrokenLinkError) as exc_info:
        make_linker(sample_graph, chapters).link()

    assert exc_info.value.target == "chapter:ghost"
    assert exc_info.value.source == "chapter_01.md"


def test_out_of_range_number_raises(sample_graph, chapters):
    """Numbered references beyond the last chapter are broken."""
    linker = make_linker(sample_graph, chapters)

    with pytest.raises(BrokenLinkError, match="out of range"):
        linker.rewrite_references("[Nine](chapter_09.md)", "index.md")
