"""Code snippet extraction and grounding for chapters.

Every code block a chapter shows must come from a scanned file. Examples are
cut directly from symbol definitions; code blocks in generated prose are
looked up in the abstraction's files and either cited or removed.
"""

import logging
import re
from dataclasses import dataclass

from tutorgen.generation.models import CodeExample
from tutorgen.graph.models import Abstraction, SourceLocation
from tutorgen.parsing.models import ParsedFile, ParsedSymbol, SymbolType
from tutorgen.repo.models import SourceFile

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```([\w+-]*)[^\n]*\n(.*?)```", re.DOTALL)
ELISION_LINES = frozenset({"...", "# ...", "// ...", "/* ... */", "…"})
# Fence languages that are never source code
UNGROUNDED_FENCES = frozenset({"mermaid", "text", "console", "bash", "shell", "sh"})

SYMBOL_KIND_NAMES = {
    SymbolType.CLASS: "Class",
    SymbolType.FUNCTION: "Function",
    SymbolType.METHOD: "Method",
    SymbolType.INTERFACE: "Interface",
    SymbolType.ENUM: "Enum",
    SymbolType.CONSTANT: "Constant",
    SymbolType.VARIABLE: "Variable",
}


@dataclass(frozen=True)
class GroundedBlock:
    """A code block from generated prose that was found in a source file."""

    language: str
    code: str
    location: SourceLocation


def _significant(lines: list[str]) -> list[tuple[int, str]]:
    """Non-blank, non-elision lines with their 1-based line numbers, stripped."""
    result = []
    for i, line in enumerate(lines, start=1):
        stripped = line.strip()
        if stripped and stripped not in ELISION_LINES:
            result.append((i, stripped))
    return result


def locate_snippet(code: str, files: list[SourceFile]) -> SourceLocation | None:
    """Find the source range a snippet was copied from.

    Lines are compared with surrounding whitespace ignored; blank lines and
    elision markers ("...") in the snippet are skipped.

    Args:
        code: Snippet text.
        files: Files to search, in priority order.

    Returns:
        Location of the first match, or None if the snippet is not verbatim.
    """
    needle = [text for _, text in _significant(code.splitlines())]
    if not needle:
        return None

    for source in files:
        haystack = _significant(source.content.splitlines())
        texts = [text for _, text in haystack]
        for start in range(len(texts) - len(needle) + 1):
            if texts[start] != needle[0]:
                continue
            if texts[start : start + len(needle)] == needle:
                first_line = haystack[start][0]
                last_line = haystack[start + len(needle) - 1][0]
                return SourceLocation(source.path, first_line, last_line)
    return None


def ground_code_blocks(body: str, files: list[SourceFile]) -> tuple[str, list[GroundedBlock]]:
    """Cite verbatim code blocks and drop invented ones.

    Args:
        body: Generated markdown.
        files: Source files of the abstraction.

    Returns:
        Tuple of (rewritten markdown, grounded blocks in order).
    """
    grounded: list[GroundedBlock] = []

    def rewrite(match: re.Match) -> str:
        language = match.group(1).lower()
        code = match.group(2).rstrip("\n")
        if language in UNGROUNDED_FENCES:
            return match.group(0)
        location = locate_snippet(code, files)
        if location is None:
            logger.info(f"Removing code block not found in source ({len(code.splitlines())} lines)")
            return ""
        grounded.append(GroundedBlock(language, code, location))
        return (
            f"{match.group(0)}\n"
            f"*Source: `{location.path}` (lines {location.start_line}-{location.end_line})*"
        )

    rewritten = FENCE_PATTERN.sub(rewrite, body)
    rewritten = re.sub(r"\n{3,}", "\n\n", rewritten).strip()
    return rewritten, grounded


def _describe(symbol: ParsedSymbol) -> str:
    kind = SYMBOL_KIND_NAMES.get(symbol.symbol_type, "Symbol")
    description = f"{kind} `{symbol.qualified_name}`"
    if symbol.docstring:
        first = symbol.docstring.strip().splitlines()[0].strip().rstrip(".")
        if first:
            description += f": {first}"
    return description


def extract_examples(
    abstraction: Abstraction,
    files: dict[str, SourceFile],
    parsed: dict[str, ParsedFile],
    chapter_ordinal: int,
    max_lines: int = 15,
    max_examples: int = 3,
) -> list[CodeExample]:
    """Cut cited code examples from the abstraction's symbol definitions.

    Symbols are taken in the abstraction's order; each example starts at the
    definition and is bounded to max_lines lines.

    Args:
        abstraction: Abstraction the chapter explains.
        files: Scanned files by path.
        parsed: Parsed files by path.
        chapter_ordinal: Ordinal of the chapter the examples belong to.
        max_lines: Longest example.
        max_examples: Most examples returned.

    Returns:
        Examples in symbol order.
    """
    examples: list[CodeExample] = []
    seen: set[tuple[str, int]] = set()

    for name in abstraction.symbols:
        if len(examples) >= max_examples:
            break
        for path in abstraction.files:
            parsed_file = parsed.get(path)
            source = files.get(path)
            if parsed_file is None or source is None:
                continue
            symbol = parsed_file.find_symbol(name)
            if symbol is None or (path, symbol.start_line) in seen:
                continue
            end_line = min(symbol.end_line, symbol.start_line + max_lines - 1)
            lines = source.lines(symbol.start_line, end_line)
            while lines and not lines[-1].strip():
                lines.pop()
            if not lines:
                continue
            seen.add((path, symbol.start_line))
            examples.append(
                CodeExample(
                    chapter_ordinal=chapter_ordinal,
                    language=source.language,
                    description=_describe(symbol),
                    code="\n".join(lines),
                    location=SourceLocation(
                        path, symbol.start_line, symbol.start_line + len(lines) - 1
                    ),
                )
            )
            break
    return examples
