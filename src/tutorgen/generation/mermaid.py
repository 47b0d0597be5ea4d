"""Mermaid diagram generators for tutorial pages."""

from __future__ import annotations

import hashlib
import logging
import re

from tutorgen.constants.generation import MAX_SEQUENCE_MESSAGES, NODE_ID_HASH_LENGTH
from tutorgen.generation.mermaid_validator import sanitize_label, validate_mermaid
from tutorgen.graph.builder import GENERIC_SYMBOLS
from tutorgen.graph.models import Abstraction, AbstractionGraph
from tutorgen.parsing.flow import ControlFlow, FlowStep, StepKind

logger = logging.getLogger(__name__)


def node_id(abstraction_id: str) -> str:
    """Stable mermaid node id for an abstraction.

    Derived from the abstraction id alone, so regenerating a tutorial keeps
    every diagram node id unchanged.
    """
    digest = hashlib.sha1(abstraction_id.encode("utf-8")).hexdigest()
    return "n" + digest[:NODE_ID_HASH_LENGTH]


def _subgraph_id(category: str) -> str:
    return "cat_" + re.sub(r"[^a-z0-9]+", "_", category.lower()).strip("_")


def _checked(diagram: str, kind: str) -> str | None:
    result = validate_mermaid(diagram)
    if not result.valid:
        logger.warning(f"Dropping invalid {kind} diagram: {'; '.join(result.errors)}")
        return None
    return diagram


class ArchitectureDiagramGenerator:
    """System architecture overview: one subgraph per category.

    Creates a `graph TB` diagram with every abstraction inside its category
    subgraph and one plain arrow per related pair.
    """

    def generate(self, graph: AbstractionGraph) -> str | None:
        """Generate the architecture diagram.

        Args:
            graph: Frozen abstraction graph.

        Returns:
            Mermaid diagram string, or None if it fails validation.
        """
        lines = ["graph TB"]

        by_category: dict[str, list[Abstraction]] = {}
        for abstraction in graph.abstractions:
            by_category.setdefault(abstraction.category, []).append(abstraction)

        for category in sorted(by_category):
            lines.append(f'    subgraph {_subgraph_id(category)}["{sanitize_label(category)}"]')
            for abstraction in by_category[category]:
                label = sanitize_label(abstraction.name)
                lines.append(f'        {node_id(abstraction.id)}["{label}"]')
            lines.append("    end")

        pairs = sorted({(r.source, r.target) for r in graph.relationships})
        for source, target in pairs:
            source_id = node_id(graph.abstractions[source].id)
            target_id = node_id(graph.abstractions[target].id)
            lines.append(f"    {source_id} --> {target_id}")

        return _checked("\n".join(lines), "architecture")


class RelationshipFlowchartGenerator:
    """Component relationship flowchart with labelled edges."""

    def __init__(self, max_label_length: int = 30):
        """Initialize the generator.

        Args:
            max_label_length: Longest edge label before truncation.
        """
        self.max_label_length = max_label_length

    def generate(self, graph: AbstractionGraph) -> str | None:
        """Generate the relationship flowchart.

        Args:
            graph: Frozen abstraction graph.

        Returns:
            Mermaid diagram string, or None if it fails validation.
        """
        lines = ["flowchart TD"]
        for abstraction in graph.abstractions:
            lines.append(f'    {node_id(abstraction.id)}["{sanitize_label(abstraction.name)}"]')

        for rel in sorted(graph.relationships, key=lambda r: (r.source, r.target, r.label)):
            source_id = node_id(graph.abstractions[rel.source].id)
            target_id = node_id(graph.abstractions[rel.target].id)
            label = sanitize_label(rel.label, max_length=self.max_label_length)
            lines.append(f'    {source_id} -->|"{label}"| {target_id}')

        return _checked("\n".join(lines), "relationship")


class ChapterDiagramGenerator:
    """Per-chapter sequence diagram traced from the abstraction's control flow.

    Participants are the abstraction and the neighbours its calls reach.
    Branches become alt blocks and loops become loop blocks. Straight-line
    flows with no branch or loop get no diagram.
    """

    def __init__(self, max_messages: int = MAX_SEQUENCE_MESSAGES):
        """Initialize the generator.

        Args:
            max_messages: Most call messages drawn before the trace is cut.
        """
        self.max_messages = max_messages

    def generate(
        self, graph: AbstractionGraph, index: int, flow: ControlFlow | None
    ) -> str | None:
        """Generate the sequence diagram for one abstraction.

        Args:
            graph: Frozen abstraction graph.
            index: Arena index of the chapter's abstraction.
            flow: Traced control flow of its entry point.

        Returns:
            Mermaid diagram string, or None when the flow is trivially
            linear or the diagram fails validation.
        """
        if flow is None or not flow.steps or flow.is_trivial:
            return None

        own = graph.abstractions[index]
        own_id = node_id(own.id)
        targets = self._call_targets(graph, index)
        used: list[Abstraction] = []
        body: list[str] = []
        budget = [self.max_messages]

        def participant(label: str) -> str:
            tokens = {t.lower() for t in re.split(r"[^A-Za-z0-9_]+", label) if t}
            for term, abstraction in targets:
                if term in tokens:
                    if abstraction not in used:
                        used.append(abstraction)
                    return node_id(abstraction.id)
            return own_id

        def emit(steps: tuple[FlowStep, ...], depth: int) -> None:
            indent = "    " * depth
            for step in steps:
                if step.kind is StepKind.CALL:
                    if budget[0] <= 0:
                        continue
                    budget[0] -= 1
                    target = participant(step.label)
                    body.append(f"{indent}{own_id}->>{target}: {sanitize_label(step.label)}")
                elif step.kind is StepKind.LOOP:
                    body.append(f"{indent}loop {sanitize_label(step.label) or 'repeat'}")
                    for _, arm in step.arms:
                        emit_arm(arm, depth + 1)
                    body.append(f"{indent}end")
                else:
                    for i, (label, arm) in enumerate(step.arms):
                        text = sanitize_label(label)
                        if i == 0:
                            body.append(f"{indent}alt {text or 'otherwise'}")
                        elif text in ("", "else"):
                            body.append(f"{indent}else")
                        else:
                            body.append(f"{indent}else {text}")
                        emit_arm(arm, depth + 1)
                    body.append(f"{indent}end")

        def emit_arm(arm: tuple[FlowStep, ...], depth: int) -> None:
            before = len(body)
            emit(arm, depth)
            if len(body) == before:
                body.append(f"{'    ' * depth}Note right of {own_id}: no calls")

        emit(flow.steps, 1)

        lines = ["sequenceDiagram", f"    participant {own_id} as {sanitize_label(own.name)}"]
        for abstraction in used:
            lines.append(
                f"    participant {node_id(abstraction.id)} as {sanitize_label(abstraction.name)}"
            )
        lines.extend(body)
        return _checked("\n".join(lines), "sequence")

    def _call_targets(self, graph: AbstractionGraph, index: int) -> list[tuple[str, Abstraction]]:
        """Lowercased call tokens that identify each neighbouring abstraction."""
        targets: list[tuple[str, Abstraction]] = []
        for neighbour in graph.neighbors(index):
            abstraction = graph.abstractions[neighbour]
            words = re.findall(r"[A-Za-z0-9]+", abstraction.name)
            terms = {"_".join(w.lower() for w in words), "".join(w.lower() for w in words)}
            for symbol in abstraction.symbols:
                terms.add(symbol.rsplit(".", 1)[-1].lower())
            for term in sorted(terms):
                if len(term) >= 3 and term not in GENERIC_SYMBOLS:
                    targets.append((term, abstraction))
        return targets
