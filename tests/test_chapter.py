"""Chapter generation, snippet grounding and overview tests."""

import pytest

from tutorgen.constants.generation import INCOMPLETE_MARKER
from tutorgen.errors import GenerationError
from tutorgen.generation import (
    ChapterGenerator,
    ChapterState,
    OverviewGenerator,
    Section,
    SectionKind,
    TutorialOrchestrator,
    extract_examples,
    ground_code_blocks,
    locate_snippet,
)
from tutorgen.generation.models import Chapter
from tutorgen.llm import FixtureSynthesizer, LLMAuthenticationError, RetryPolicy
from tutorgen.parsing import ParserRegistry

PATHS_SNIPPET = "def paths(self):\n    return sorted(self.root.iterdir())"


@pytest.fixture
def plans(sample_files, sample_graph):
    """Frozen plans for the sample graph in declaration order."""
    parsed = ParserRegistry().parse_all(sample_files)
    orchestrator = TutorialOrchestrator()
    return orchestrator.plan_chapters("Sample", sample_graph, (0, 1, 2), sample_files, parsed)


def generator(synthesizer=None, max_attempts=2):
    return ChapterGenerator(
        synthesizer=synthesizer,
        max_attempts=max_attempts,
        retry_policy=RetryPolicy(max_attempts=max_attempts, backoff_seconds=0.0),
    )


# =============================================================================
# Snippets
# =============================================================================


def test_locate_snippet_ignores_indentation(sample_files):
    """Dedented snippets still map to their source lines."""
    location = locate_snippet(PATHS_SNIPPET, sample_files)

    assert str(location) == "app/scanner.py:22-23"


def test_locate_snippet_rejects_invented_code(sample_files):
    """Code that is not in any file has no location."""
    assert locate_snippet("def paths(self):\n    return []", sample_files) is None
    assert locate_snippet("\n   \n", sample_files) is None


def test_ground_code_blocks_cites_and_removes(sample_files):
    """Verbatim blocks are cited, invented blocks dropped, diagrams kept."""
    body = (
        "Intro.\n\n"
        f"```python\n{PATHS_SNIPPET}\n```\n\n"
        "```python\nmagic()\n```\n\n"
        "```mermaid\ngraph TB\n```\n"
    )

    rewritten, grounded = ground_code_blocks(body, sample_files)

    assert "*Source: `app/scanner.py` (lines 22-23)*" in rewritten
    assert "magic()" not in rewritten
    assert "```mermaid" in rewritten
    assert [str(block.location) for block in grounded] == ["app/scanner.py:22-23"]


def test_extract_examples_follow_symbol_order(sample_files, sample_graph):
    """Examples are cut from symbol definitions and capped in length."""
    files = {f.path: f for f in sample_files}
    parsed = ParserRegistry().parse_all(sample_files)
    scanner = sample_graph.get("scanner")

    examples = extract_examples(scanner, files, parsed, chapter_ordinal=2, max_lines=15)

    assert [str(e.location) for e in examples] == ["app/scanner.py:6-20", "app/scanner.py:29-30"]
    assert examples[0].description == "Class `Scanner`: Walks a directory and reads Python files"
    assert examples[1].code == "def skip(path):\n    return None"
    assert examples[0].citation == "`app/scanner.py` (lines 6-20)"


# =============================================================================
# Chapter Generator
# =============================================================================


async def test_static_chapter_is_finalized(plans):
    """Without a backend, every section is written from the analysis."""
    chapter = await generator().generate(plans[1])

    assert chapter.state is ChapterState.FINALIZED
    assert chapter.attempts == 1
    assert [s.kind for s in chapter.sections] == list(SectionKind)
    assert all(s.body for s in chapter.sections)
    assert len(chapter.code_examples) == 2
    assert chapter.diagram is not None
    integration = chapter.section(SectionKind.INTEGRATION).body
    assert "(chapter:report)" in integration
    assert "Scanner reads configuration from Settings" in integration


async def test_static_walkthrough_outlines_flow(plans):
    """The walkthrough lists traced calls, loops and branches."""
    chapter = await generator().generate(plans[1])

    walkthrough = chapter.section(SectionKind.WALKTHROUGH).body
    assert "`Scanner.scan`" in walkthrough
    assert "- repeats `for path in self.paths()`" in walkthrough
    assert "- calls `skip`" in walkthrough


async def test_each_section_is_a_separate_call(plans):
    """Seven section prompts are sent per draft."""
    synthesizer = FixtureSynthesizer(default="See [Settings](chapter:settings).")

    chapter = await generator(synthesizer).generate(plans[0])

    assert chapter.state is ChapterState.FINALIZED
    assert len(synthesizer.calls) == 7
    assert len(synthesizer.calls_matching('section "Problem & Motivation"')) == 1


async def test_backend_error_is_retried(plans):
    """A failing section call sends the chapter back to drafting."""
    synthesizer = FixtureSynthesizer(
        default="Body.", failures={'section "Problem & Motivation"': 1}
    )

    chapter = await generator(synthesizer, max_attempts=3).generate(plans[0])

    assert chapter.state is ChapterState.FINALIZED
    assert chapter.attempts == 2


async def test_unknown_reference_exhausts_attempts(plans):
    """A chapter that keeps failing review raises GenerationError."""
    synthesizer = FixtureSynthesizer(default="See [Ghost](chapter:ghost).")

    with pytest.raises(GenerationError) as exc_info:
        await generator(synthesizer, max_attempts=2).generate(plans[0])

    assert exc_info.value.attempts == 2
    assert exc_info.value.abstraction_id == "report"
    assert "unknown chapter reference" in str(exc_info.value)
    assert len(synthesizer.calls) == 14


async def test_authentication_error_fails_immediately(plans):
    """Rejected credentials are not retried."""
    synthesizer = FixtureSynthesizer(
        default="Body.",
        failures={'section "Problem & Motivation"': 5},
        error_type=LLMAuthenticationError,
    )

    with pytest.raises(GenerationError) as exc_info:
        await generator(synthesizer, max_attempts=3).generate(plans[0])

    assert exc_info.value.attempts == 1


async def test_verbatim_code_in_prose_becomes_an_example(plans):
    """Grounded code blocks join the chapter's cited examples."""
    synthesizer = FixtureSynthesizer(
        responses={
            'section "Practical Usage Examples"': f"List files:\n\n```python\n{PATHS_SNIPPET}\n```"
        },
        default="Body.",
    )

    chapter = await generator(synthesizer).generate(plans[1])

    usage = chapter.section(SectionKind.USAGE).body
    assert "*Source: `app/scanner.py` (lines 22-23)*" in usage
    assert [str(e.location) for e in chapter.code_examples][-1] == "app/scanner.py:22-23"
    assert chapter.code_examples[-1].description == "Excerpt discussed in Scanner"


def test_placeholder_marks_every_section(plans):
    """Placeholders keep the plan's links and carry the incomplete marker."""
    chapter = generator().placeholder(plans[1], GenerationError("backend down"))

    assert chapter.incomplete
    assert chapter.state is ChapterState.FAILED
    assert all(s.body.startswith(INCOMPLETE_MARKER) for s in chapter.sections)
    assert "backend down" in chapter.sections[0].body
    assert [link.direction for link in chapter.links] == ["previous", "next"]


def test_review_reports_empty_sections_and_bad_numbers(plans):
    """Missing sections and out-of-range chapter numbers fail review."""
    sections = (
        Section(SectionKind.PROBLEM, "See [Later](chapter_07.md)."),
        Section(SectionKind.CONCEPT, "   "),
    )

    problems = generator().review(plans[0], sections)

    assert "empty section 'Core Concept Explanation'" in problems
    assert "chapter reference 'chapter_07.md' out of range" in problems
    assert len(problems) == 7


def test_chapter_rejects_illegal_transitions():
    """A pending chapter cannot be finalized directly."""
    chapter = Chapter(ordinal=1, title="Report", abstraction_id="report")

    with pytest.raises(ValueError, match="pending -> finalized"):
        chapter.transition(ChapterState.FINALIZED)


# =============================================================================
# Overview
# =============================================================================


async def test_static_overview_lists_abstractions(sample_graph):
    """The static paragraph names every abstraction in order."""
    overview = await OverviewGenerator().generate("Sample", list(sample_graph.abstractions))

    assert overview.startswith("This tutorial walks through the Sample codebase in 3 chapters")
    assert "Scanner: Walks a directory and reads Python files." in overview


async def test_overview_uses_readme_and_collapses_whitespace(sample_graph, sample_files):
    """The generated overview is a single paragraph."""
    synthesizer = FixtureSynthesizer(default="First line.\n\nSecond   line.")

    overview = await OverviewGenerator(synthesizer).generate(
        "Sample", list(sample_graph.abstractions), sample_files
    )

    assert overview == "First line. Second line."
    assert "No README available." in synthesizer.calls[0].prompt


async def test_overview_falls_back_on_backend_error(sample_graph):
    """A failing overview call does not fail the job."""
    synthesizer = FixtureSynthesizer(failures={"overview paragraph": 1}, default="unused")

    overview = await OverviewGenerator(synthesizer).generate(
        "Sample", list(sample_graph.abstractions)
    )

    assert overview.startswith("This tutorial walks through the Sample codebase")
