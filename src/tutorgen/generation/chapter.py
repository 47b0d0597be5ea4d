"""Chapter generation: draft, review, retry, finalize.

A chapter is drafted as seven independent section calls that run
concurrently, grounded against the abstraction's source, and reviewed. A
failed review or a backend error sends it back to drafting until the attempt
budget runs out.
"""

from __future__ import annotations

import asyncio
import logging
import re

from tutorgen.config import ConfigError, load_settings
from tutorgen.constants.generation import INCOMPLETE_MARKER
from tutorgen.errors import GenerationError, JobCancelled
from tutorgen.generation.models import (
    Chapter,
    ChapterPlan,
    ChapterState,
    CodeExample,
    Section,
    SectionKind,
)
from tutorgen.generation.prompts import SYSTEM_PROMPT, chapter_reference, get_section_prompt
from tutorgen.generation.snippets import extract_examples, ground_code_blocks
from tutorgen.llm.client import LLMAuthenticationError, LLMError
from tutorgen.llm.synthesizer import ContentSynthesizer, RetryPolicy, first_error
from tutorgen.parsing.flow import FlowStep, StepKind
from tutorgen.parsing.registry import ParserRegistry

logger = logging.getLogger(__name__)

# Chapter references accepted in generated prose
CHAPTER_REF_PATTERN = re.compile(r"\]\((chapter:[^)\s]+|chapter_?\d+\.md)\)")
MAX_CONTEXT_CHARS = 12_000


class ChapterGenerator:
    """Generates one tutorial chapter from a frozen ChapterPlan."""

    def __init__(
        self,
        synthesizer: ContentSynthesizer | None = None,
        max_attempts: int | None = None,
        retry_policy: RetryPolicy | None = None,
        max_example_lines: int | None = None,
        max_examples: int | None = None,
        temperature: float | None = None,
        registry: ParserRegistry | None = None,
    ):
        """Initialize the chapter generator.

        Args:
            synthesizer: Generative backend. None writes sections from the
                static analysis alone.
            max_attempts: Drafting attempts before GenerationError.
            retry_policy: Backoff between attempts.
            max_example_lines: Longest cited code example.
            max_examples: Most cited code examples per chapter.
            temperature: Sampling temperature for section calls.
            registry: Parser registry used to locate example symbols.
        """
        generation = None
        try:
            generation = load_settings().generation
        except (ValueError, OSError, ConfigError):
            pass

        self.synthesizer = synthesizer
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=max_attempts or (generation.max_attempts if generation else 3),
            backoff_seconds=generation.retry_backoff_seconds if generation else 1.0,
        )
        self.max_attempts = max_attempts or self.retry_policy.max_attempts
        self.max_example_lines = max_example_lines or (
            generation.max_example_lines if generation else 15
        )
        if max_examples is None:
            max_examples = generation.max_examples_per_chapter if generation else 3
        self.max_examples = max_examples
        if temperature is None:
            temperature = generation.temperature if generation else 0.0
        self.temperature = temperature
        self.registry = registry or ParserRegistry()

    async def generate(self, plan: ChapterPlan) -> Chapter:
        """Generate, review and finalize a chapter.

        Args:
            plan: Frozen plan of the chapter.

        Returns:
            Chapter in the FINALIZED state.

        Raises:
            GenerationError: If every attempt fails review or errors.
            JobCancelled: If the job is cancelled while drafting.
        """
        chapter = Chapter(
            ordinal=plan.ordinal,
            title=plan.title,
            abstraction_id=plan.abstraction.id,
            links=plan.links,
            diagram=plan.diagram,
        )
        examples = self.examples(plan)
        code_context = self._code_context(plan)
        delays = self.retry_policy.delays()
        problems: list[str] = []

        chapter.transition(ChapterState.DRAFTING)
        for attempt in range(1, self.max_attempts + 1):
            chapter.attempts = attempt
            try:
                drafted = await self._draft(plan, code_context, examples)
            except LLMAuthenticationError as e:
                chapter.transition(ChapterState.FAILED)
                raise GenerationError(
                    f"Chapter {plan.ordinal} ({plan.title}) failed: {e}",
                    abstraction_id=plan.abstraction.id,
                    attempts=attempt,
                ) from e
            except LLMError as e:
                problems = [f"backend error: {e}"]
            else:
                sections, grounded = self._ground(plan, drafted)
                chapter.transition(ChapterState.REVIEWED)
                problems = self.review(plan, sections)
                if not problems:
                    chapter.sections = sections
                    chapter.code_examples = self._merge_examples(plan, examples, grounded)
                    chapter.transition(ChapterState.FINALIZED)
                    logger.info(f"Finalized chapter {plan.ordinal}: {plan.title}")
                    return chapter
                chapter.transition(ChapterState.DRAFTING)

            logger.warning(
                f"Chapter {plan.ordinal} ({plan.title}) attempt {attempt}/{self.max_attempts} "
                f"rejected: {'; '.join(problems)}"
            )
            if attempt < self.max_attempts:
                await asyncio.sleep(delays[min(attempt - 1, len(delays) - 1)] if delays else 0)

        chapter.transition(ChapterState.FAILED)
        raise GenerationError(
            f"Chapter {plan.ordinal} ({plan.title}) failed after {self.max_attempts} attempts: "
            f"{'; '.join(problems)}",
            abstraction_id=plan.abstraction.id,
            attempts=self.max_attempts,
        )

    def placeholder(self, plan: ChapterPlan, error: Exception) -> Chapter:
        """Build a visibly incomplete chapter for a failed generation.

        Args:
            plan: Frozen plan of the chapter.
            error: Why generation failed.

        Returns:
            Chapter whose every section carries the incomplete marker.
        """
        reason = " ".join(str(error).split())
        sections = tuple(
            Section(
                kind,
                f"{INCOMPLETE_MARKER} This section could not be generated ({reason}).\n\n"
                f"{plan.abstraction.summary}",
            )
            for kind in SectionKind
        )
        return Chapter(
            ordinal=plan.ordinal,
            title=plan.title,
            abstraction_id=plan.abstraction.id,
            sections=sections,
            links=plan.links,
            code_examples=tuple(self.examples(plan)),
            diagram=plan.diagram,
            state=ChapterState.FAILED,
            incomplete=True,
            attempts=self.max_attempts,
        )

    def review(self, plan: ChapterPlan, sections: tuple[Section, ...]) -> list[str]:
        """Check a drafted chapter.

        Returns:
            Problems found; empty when the chapter passes.
        """
        problems = []
        present = {s.kind for s in sections if s.body.strip()}
        for kind in SectionKind:
            if kind not in present:
                problems.append(f"empty section '{kind.title}'")

        known_ids = {ref.abstraction_id for ref in plan.chapters}
        for section in sections:
            for target in CHAPTER_REF_PATTERN.findall(section.body):
                if target.startswith("chapter:"):
                    if target.removeprefix("chapter:") not in known_ids:
                        problems.append(f"unknown chapter reference '{target}'")
                    continue
                number = int(re.sub(r"\D", "", target))
                if not 1 <= number <= len(plan.chapters):
                    problems.append(f"chapter reference '{target}' out of range")
        return problems

    def examples(self, plan: ChapterPlan) -> list[CodeExample]:
        """Deterministic code examples cut from the abstraction's symbols."""
        files = {f.path: f for f in plan.files}
        parsed = {
            path: self.registry.parse_source(files[path])
            for path in plan.abstraction.files
            if path in files
        }
        return extract_examples(
            plan.abstraction,
            files,
            parsed,
            chapter_ordinal=plan.ordinal,
            max_lines=self.max_example_lines,
            max_examples=self.max_examples,
        )

    def _code_context(self, plan: ChapterPlan) -> str:
        parts = []
        budget = MAX_CONTEXT_CHARS
        for path in plan.abstraction.files:
            source = plan.file(path)
            if source is None or budget <= 0:
                continue
            body = source.content[:budget]
            budget -= len(body)
            parts.append(f"File: {path}\n```{source.language}\n{body}\n```")
        return "\n\n".join(parts)

    async def _draft(
        self,
        plan: ChapterPlan,
        code_context: str,
        examples: list[CodeExample],
    ) -> dict[SectionKind, str]:
        if self.synthesizer is None:
            return static_sections(plan, examples)

        async def section(kind: SectionKind) -> str:
            prompt = get_section_prompt(plan, kind, code_context)
            return await self.synthesizer.generate(
                prompt, system_prompt=SYSTEM_PROMPT, temperature=self.temperature
            )

        try:
            async with asyncio.TaskGroup() as tg:
                tasks = {kind: tg.create_task(section(kind)) for kind in SectionKind}
        except BaseExceptionGroup as group:
            error = first_error(group)
            if isinstance(error, (LLMError, JobCancelled)):
                raise error from None
            raise
        return {kind: task.result() for kind, task in tasks.items()}

    def _ground(self, plan: ChapterPlan, drafted: dict[SectionKind, str]):
        sources = [f for path in plan.abstraction.files if (f := plan.file(path)) is not None]
        sections = []
        grounded = []
        for kind in SectionKind:
            body, blocks = ground_code_blocks(drafted.get(kind, ""), sources)
            sections.append(Section(kind, body))
            grounded.extend(blocks)
        return tuple(sections), grounded

    def _merge_examples(self, plan: ChapterPlan, examples, grounded) -> tuple[CodeExample, ...]:
        merged = list(examples)
        locations = {e.location for e in merged}
        for block in grounded:
            if len(merged) >= self.max_examples:
                break
            if block.location in locations:
                continue
            locations.add(block.location)
            merged.append(
                CodeExample(
                    chapter_ordinal=plan.ordinal,
                    language=block.language or "text",
                    description=f"Excerpt discussed in {plan.title}",
                    code=block.code,
                    location=block.location,
                )
            )
        return tuple(merged)


# =============================================================================
# Static sections
# =============================================================================


def _outline(steps: tuple[FlowStep, ...], depth: int = 0) -> list[str]:
    lines = []
    indent = "  " * depth
    for step in steps:
        if step.kind is StepKind.CALL:
            lines.append(f"{indent}- calls `{step.label}` (line {step.line})")
        elif step.kind is StepKind.LOOP:
            lines.append(f"{indent}- repeats `{step.label}` (line {step.line}):")
            for _, arm in step.arms:
                lines.extend(_outline(arm, depth + 1))
        else:
            lines.append(f"{indent}- branches at line {step.line}:")
            for label, arm in step.arms:
                lines.append(f"{indent}  - `{label}`:")
                lines.extend(_outline(arm, depth + 2))
    return lines


def static_sections(plan: ChapterPlan, examples: list[CodeExample]) -> dict[SectionKind, str]:
    """Section bodies written from static analysis alone."""
    abstraction = plan.abstraction
    files = ", ".join(f"`{path}`" for path in abstraction.files)
    symbols = ", ".join(f"`{s}`" for s in abstraction.symbols[:8]) or "its module-level code"

    integration = [
        f"- {sentence} (see {chapter_reference(ref.abstraction_id, ref.title)})"
        for ref, sentence in plan.neighbours
    ]
    walkthrough = (
        [f"The entry point `{plan.flow.symbol}` in `{plan.flow.path}` proceeds as follows:", ""]
        + _outline(plan.flow.steps)
        if plan.flow is not None and plan.flow.steps
        else [f"The implementation lives in {files}."]
    )
    if examples:
        usage = "The examples at the end of this section are cut directly from the source."
    else:
        usage = f"{abstraction.name} is used through {symbols}."
    conclusion = f"{abstraction.name}: {abstraction.summary}"
    if plan.next is not None:
        next_ref = plan.chapters[plan.next.ordinal - 1]
        link = chapter_reference(next_ref.abstraction_id, next_ref.title)
        conclusion += f"\n\nNext, {link} builds on this."

    return {
        SectionKind.PROBLEM: (
            f"**{abstraction.name}** belongs to the {abstraction.category} part of "
            f"{plan.project_name or 'the project'}. {abstraction.summary}"
        ),
        SectionKind.CONCEPT: f"{abstraction.name} is made up of {symbols}, defined in {files}.",
        SectionKind.USAGE: usage,
        SectionKind.WALKTHROUGH: "\n".join(walkthrough),
        SectionKind.INTEGRATION: "\n".join(integration)
        or f"{abstraction.name} does not interact directly with other chapters' abstractions.",
        SectionKind.PRACTICES: "\n".join(
            [f"- Start reading at `{path}`." for path in abstraction.files[:3]]
            + [f"- Its public surface is {symbols}."]
        ),
        SectionKind.CONCLUSION: conclusion,
    }
