"""Mermaid diagram syntax validation."""

import re
from dataclasses import dataclass, field


@dataclass
class ValidationResult:
    """Result of Mermaid diagram validation.

    Attributes:
        valid: True if the diagram syntax is valid.
        errors: List of human-readable error messages.
        line_numbers: Lines where errors were found.
    """

    valid: bool
    errors: list[str] = field(default_factory=list)
    line_numbers: list[int] = field(default_factory=list)


# Diagram types the tutorial emits
VALID_DIAGRAM_TYPES = frozenset(["flowchart", "graph", "sequencediagram"])

# Sequence diagram blocks closed by "end"
BLOCK_OPENERS = ("alt", "opt", "loop", "par", "critical", "break", "rect")


def validate_mermaid(content: str) -> ValidationResult:
    """Validate Mermaid diagram syntax.

    Performs structural validation including:
    - Diagram type declaration present
    - Balanced brackets [], (), {}
    - Subgraph and sequence block pairing with end

    Args:
        content: Mermaid diagram content to validate.

    Returns:
        ValidationResult with validity status and any errors.
    """
    errors: list[str] = []
    line_numbers: list[int] = []

    lines = content.strip().split("\n")
    if not content.strip():
        return ValidationResult(valid=False, errors=["Empty diagram"], line_numbers=[0])

    # Check diagram type declaration
    first_line = lines[0].strip().lower()
    has_valid_type = any(first_line.startswith(dt) for dt in VALID_DIAGRAM_TYPES)
    if not has_valid_type:
        errors.append(
            "Missing or invalid diagram type. Must start with graph, flowchart or sequenceDiagram."
        )
        line_numbers.append(1)

    # Check balanced brackets
    bracket_pairs = [("[", "]"), ("(", ")"), ("{", "}")]
    for open_char, close_char in bracket_pairs:
        open_count = content.count(open_char)
        close_count = content.count(close_char)
        if open_count != close_count:
            errors.append(
                f"Unbalanced brackets: {open_count} '{open_char}' vs {close_count} '{close_char}'"
            )

    # Check block/end pairing
    depth = 0
    for number, line in enumerate(lines, start=1):
        word = line.strip().split(" ", 1)[0].lower()
        if word == "subgraph" or word in BLOCK_OPENERS:
            depth += 1
        elif word == "end":
            depth -= 1
            if depth < 0:
                errors.append(f"Unmatched end on line {number}")
                line_numbers.append(number)
                depth = 0
    if depth > 0:
        errors.append(f"Unclosed block: {depth} subgraph or block without end")

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        line_numbers=line_numbers,
    )


def sanitize_label(text: str, max_length: int = 40) -> str:
    """Make text safe for Mermaid node labels and messages.

    Handles problematic characters and truncates long labels.

    Args:
        text: Raw text to sanitize.
        max_length: Maximum length before truncation.

    Returns:
        Sanitized label safe for Mermaid diagrams.
    """
    # Replace newlines with spaces
    result = text.replace("\n", " ").replace("\r", "")

    # Brackets and braces would open a node shape
    result = result.replace("[", "(").replace("]", ")")
    result = result.replace("{", "(").replace("}", ")")
    result = result.replace('"', "'")
    result = result.replace("<", "").replace(">", "")
    # Statement separators, comments, edge label delimiters
    result = result.replace(";", ",").replace("#", "").replace("|", "/")

    # Collapse multiple spaces
    result = " ".join(result.split())

    # Truncate if too long
    if len(result) > max_length:
        result = result[: max_length - 3] + "..."

    return _balance_parens(result)


def _balance_parens(text: str) -> str:
    """Drop unmatched parentheses, e.g. after truncation."""
    kept: list[str] = []
    open_positions: list[int] = []
    for char in text:
        if char == "(":
            open_positions.append(len(kept))
        elif char == ")":
            if not open_positions:
                continue
            open_positions.pop()
        kept.append(char)
    for position in reversed(open_positions):
        del kept[position]
    return "".join(kept).strip()
