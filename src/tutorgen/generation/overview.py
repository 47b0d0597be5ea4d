# src/tutorgen/generation/overview.py
"""Project overview paragraph for the tutorial index."""

from __future__ import annotations

import logging

from tutorgen.generation.prompts import SYSTEM_PROMPT, get_overview_prompt
from tutorgen.graph.models import Abstraction
from tutorgen.llm.client import LLMError
from tutorgen.llm.synthesizer import ContentSynthesizer
from tutorgen.repo.models import SourceFile

logger = logging.getLogger(__name__)

README_NAMES = ("README.md", "README.rst", "README.txt", "README")
MAX_README_CHARS = 4000


def find_readme(files: list[SourceFile]) -> str | None:
    """Text of the top-level README, if the scan picked one up."""
    by_path = {f.path: f for f in files}
    for name in README_NAMES:
        if name in by_path:
            return by_path[name].content[:MAX_README_CHARS]
    return None


class OverviewGenerator:
    """Generates the overview paragraph at the top of index.md.

    Falls back to a paragraph assembled from abstraction summaries when no
    synthesizer is configured or the call fails.
    """

    def __init__(self, synthesizer: ContentSynthesizer | None = None, temperature: float = 0.0):
        """Initialize the overview generator.

        Args:
            synthesizer: Generative backend, or None for the static paragraph.
            temperature: Sampling temperature for the overview call.
        """
        self.synthesizer = synthesizer
        self.temperature = temperature

    async def generate(
        self,
        project_name: str,
        abstractions: list[Abstraction],
        files: list[SourceFile] | None = None,
    ) -> str:
        """Generate the overview paragraph.

        Args:
            project_name: Name of the documented project.
            abstractions: Abstractions in chapter order.
            files: Scanned files, searched for a README.

        Returns:
            A single markdown paragraph.
        """
        if self.synthesizer is None:
            return self.static_overview(project_name, abstractions)

        prompt = get_overview_prompt(
            project_name=project_name,
            abstractions=abstractions,
            readme_content=find_readme(files or []),
        )
        try:
            content = await self.synthesizer.generate(
                prompt=prompt,
                system_prompt=SYSTEM_PROMPT,
                temperature=self.temperature,
            )
        except LLMError as e:
            logger.warning(f"Overview generation failed, using static overview: {e}")
            return self.static_overview(project_name, abstractions)

        paragraph = " ".join(content.split())
        return paragraph or self.static_overview(project_name, abstractions)

    def static_overview(self, project_name: str, abstractions: list[Abstraction]) -> str:
        """Overview paragraph assembled from abstraction summaries."""
        if not abstractions:
            return f"This tutorial walks through the {project_name} codebase."
        names = ", ".join(a.name for a in abstractions)
        parts = [
            f"This tutorial walks through the {project_name} codebase in "
            f"{len(abstractions)} chapters, covering {names}."
        ]
        for abstraction in abstractions:
            summary = abstraction.summary.rstrip(".")
            parts.append(f"{abstraction.name}: {summary}.")
        return " ".join(parts)
