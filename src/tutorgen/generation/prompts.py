# src/tutorgen/generation/prompts.py
"""Prompt templates for tutorial generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tutorgen.constants.generation import VALID_CATEGORIES
from tutorgen.generation.models import SectionKind

if TYPE_CHECKING:
    from tutorgen.generation.models import ChapterPlan
    from tutorgen.graph.models import Abstraction


@dataclass
class PromptTemplate:
    """A template for generating prompts with variable substitution."""

    template: str

    def render(self, **kwargs: Any) -> str:
        """Render the template with the given variables.

        Args:
            **kwargs: Variables to substitute into the template.

        Returns:
            The rendered template string.

        Raises:
            KeyError: If a required variable is missing.
        """
        return self.template.format(**kwargs)


# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT = """You are an experienced engineer writing a beginner-friendly tutorial
about a codebase. Follow these guidelines:

1. Be precise and factual - only describe what exists in the code
2. Explain concepts with analogies before details
3. Only quote code that appears verbatim in the provided source
4. Keep code blocks short (at most 15 lines)
5. Refer to other chapters with links of the form [Title](chapter:<id>)

Output clean Markdown without top-level headings."""


# =============================================================================
# Concept Extraction
# =============================================================================

EXTRACTION_TEMPLATE = PromptTemplate(
    """For the project "{project_name}", identify the {max_abstractions} most important
abstractions a newcomer must understand.

## Candidate Components
Each candidate is listed as `index # name (files)`:
{candidate_listing}

## Source Excerpts
{file_context}

---

For each abstraction provide:
1. `name`: a short, descriptive name
2. `summary`: one sentence describing its responsibility
3. `category`: one of {categories}
4. `candidates`: the candidate indices it is built from (at least one)
5. `interactions`: short sentences naming other abstractions it works with,
   such as "reads configuration from Settings"

Respond with a YAML list only, inside a ```yaml fenced block:

```yaml
- name: File Filter
  summary: Decides which repository files are scanned.
  category: Infrastructure
  candidates: [0, 3]
  interactions:
    - reads configuration from Settings
```"""
)


# =============================================================================
# Overview
# =============================================================================

OVERVIEW_TEMPLATE = PromptTemplate(
    """Write a single overview paragraph (4-6 sentences) introducing the project
"{project_name}" to a newcomer.

## README Content
{readme_content}

## Core Abstractions
{abstraction_listing}

---

Explain what the project does and how the abstractions fit together. Do not
use headings, lists or code blocks."""
)


# =============================================================================
# Chapter Sections
# =============================================================================

SECTION_TEMPLATE = PromptTemplate(
    """You are writing chapter {ordinal} of a tutorial about "{project_name}".
The chapter explains the abstraction "{title}" ({category}): {summary}

## Tutorial Chapters
{chapter_listing}

## Related Abstractions
{related}

## Source Code
{code_context}

## Control Flow
{flow_outline}

---

Write only the body of the section "{section_title}". {instructions}

Link to other chapters with [Title](chapter:<id>) using the ids listed above.
Do not repeat the section heading."""
)

SECTION_INSTRUCTIONS = {
    SectionKind.PROBLEM: (
        "Describe the problem this abstraction solves and why a project needs it. "
        "Open with a concrete scenario a newcomer would recognise."
    ),
    SectionKind.CONCEPT: (
        "Explain the core idea in plain language, starting with an analogy, then "
        "break it into its key parts."
    ),
    SectionKind.USAGE: (
        "Show how other code uses this abstraction. Quote short snippets from the "
        "source code above and explain each one."
    ),
    SectionKind.WALKTHROUGH: (
        "Walk through what happens internally when the abstraction is used, step "
        "by step, following the control flow above."
    ),
    SectionKind.INTEGRATION: (
        "Explain how this abstraction connects to the related abstractions, linking "
        "to their chapters."
    ),
    SectionKind.PRACTICES: (
        "Give practical tips and common pitfalls as a short bulleted list."
    ),
    SectionKind.CONCLUSION: (
        "Summarise what the reader learned in two or three sentences and point to "
        "the next chapter if there is one."
    ),
}


def chapter_reference(abstraction_id: str, title: str) -> str:
    """Link syntax used in prompts and generated prose before linking."""
    return f"[{title}](chapter:{abstraction_id})"


def get_extraction_prompt(
    project_name: str,
    candidate_listing: str,
    file_context: str,
    max_abstractions: int,
) -> str:
    """Generate a prompt for concept extraction.

    Args:
        project_name: Name of the documented project.
        candidate_listing: Numbered listing of static candidates.
        file_context: Source excerpts trimmed to the context limit.
        max_abstractions: Upper bound on returned abstractions.

    Returns:
        The rendered prompt string.
    """
    return EXTRACTION_TEMPLATE.render(
        project_name=project_name,
        max_abstractions=max_abstractions,
        candidate_listing=candidate_listing or "(none)",
        file_context=file_context or "(no source excerpts)",
        categories=", ".join(sorted(VALID_CATEGORIES)),
    )


def get_overview_prompt(
    project_name: str,
    abstractions: list[Abstraction],
    readme_content: str | None = None,
) -> str:
    """Generate a prompt for the project overview paragraph.

    Args:
        project_name: Name of the documented project.
        abstractions: Abstractions in chapter order.
        readme_content: README text, if the repository has one.

    Returns:
        The rendered prompt string.
    """
    listing = "\n".join(f"- {a.name} ({a.category}): {a.summary}" for a in abstractions)
    return OVERVIEW_TEMPLATE.render(
        project_name=project_name,
        readme_content=readme_content or "No README available.",
        abstraction_listing=listing or "(none)",
    )


def _format_flow(plan: ChapterPlan) -> str:
    if plan.flow is None or not plan.flow.steps:
        return "No control flow was traced."
    lines = [f"Entry point: {plan.flow.symbol} in {plan.flow.path}"]

    def emit(steps, depth):
        for step in steps:
            lines.append(f"{'  ' * depth}- {step.kind.value}: {step.label} (line {step.line})")
            for label, arm in step.arms:
                if label:
                    lines.append(f"{'  ' * (depth + 1)}- when {label}:")
                emit(arm, depth + 2)

    emit(plan.flow.steps, 0)
    return "\n".join(lines)


def get_section_prompt(plan: ChapterPlan, kind: SectionKind, code_context: str) -> str:
    """Generate a prompt for one chapter section.

    Args:
        plan: Frozen plan of the chapter.
        kind: Section to write.
        code_context: Source excerpts of the abstraction.

    Returns:
        The rendered prompt string.
    """
    abstraction = plan.abstraction
    chapter_listing = "\n".join(
        f"{ref.ordinal}. {chapter_reference(ref.abstraction_id, ref.title)}"
        for ref in plan.chapters
    )
    related = "\n".join(
        f"- {chapter_reference(ref.abstraction_id, ref.title)}: {sentence}"
        for ref, sentence in plan.neighbours
    )
    return SECTION_TEMPLATE.render(
        project_name=plan.project_name,
        ordinal=plan.ordinal,
        title=abstraction.name,
        category=abstraction.category,
        summary=abstraction.summary,
        chapter_listing=chapter_listing,
        related=related or "None.",
        code_context=code_context or "(no source available)",
        flow_outline=_format_flow(plan),
        section_title=kind.title,
        instructions=SECTION_INSTRUCTIONS[kind],
    )
