"""Fallback regex-based parser for languages without a dedicated parser.

This parser uses regex patterns to detect common constructs across multiple
programming languages. It never fails and always returns a successful
ParseResult, making it suitable as a fallback when dedicated parsers are
unavailable.
"""

import re
from pathlib import Path

from tutorgen.constants.files import EXTENSION_LANGUAGES
from tutorgen.parsing.base import BaseParser
from tutorgen.parsing.models import ParsedFile, ParsedSymbol, ParseResult, SymbolType


# Regex patterns for common language constructs: (pattern, symbol_type)
FUNCTION_PATTERNS = [
    # Go: func name(...)
    (re.compile(r"^\s*func\s+(\w+)\s*\(", re.MULTILINE), SymbolType.FUNCTION),
    # Go method: func (receiver) name(...)
    (re.compile(r"^\s*func\s+\([^)]+\)\s+(\w+)\s*\(", re.MULTILINE), SymbolType.METHOD),
    # Rust: fn name(...)
    (re.compile(r"^\s*(?:pub\s+)?(?:async\s+)?fn\s+(\w+)\s*[<(]", re.MULTILINE), SymbolType.FUNCTION),
    # Ruby: def name
    (re.compile(r"^\s*def\s+(?:self\.)?(\w+)", re.MULTILINE), SymbolType.FUNCTION),
    # JavaScript/TypeScript/PHP: [export] [async] function name(...)
    (
        re.compile(
            r"^\s*(?:export\s+(?:default\s+)?)?(?:async\s+)?function\s*\*?\s*(\w+)\s*[<(]",
            re.MULTILINE,
        ),
        SymbolType.FUNCTION,
    ),
    # JavaScript/TypeScript arrow functions: [export] const name = (...) =>
    (
        re.compile(
            r"^\s*(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*(?:async\s+)?"
            r"(?:\([^)]*\)|\w+)\s*(?::[^=]+)?=>",
            re.MULTILINE,
        ),
        SymbolType.FUNCTION,
    ),
    # Java/C#-like methods: modifiers type name(...)
    (
        re.compile(
            r"^\s*(?:(?:public|private|protected|static|final|virtual|override|async)\s+)+"
            r"[\w<>\[\],]+\s+(\w+)\s*\(",
            re.MULTILINE,
        ),
        SymbolType.METHOD,
    ),
]

CLASS_PATTERNS = [
    # class Name (optionally exported / abstract)
    (
        re.compile(
            r"^\s*(?:export\s+(?:default\s+)?)?(?:public\s+|private\s+)?(?:abstract\s+)?"
            r"class\s+(\w+)",
            re.MULTILINE,
        ),
        SymbolType.CLASS,
    ),
    # struct Name
    (re.compile(r"^\s*(?:pub\s+)?(?:type\s+)?struct\s+(\w+)", re.MULTILINE), SymbolType.CLASS),
    # trait Name (Rust)
    (re.compile(r"^\s*(?:pub\s+)?trait\s+(\w+)", re.MULTILINE), SymbolType.INTERFACE),
    # interface Name
    (
        re.compile(r"^\s*(?:export\s+)?(?:public\s+)?interface\s+(\w+)", re.MULTILINE),
        SymbolType.INTERFACE,
    ),
    # enum Name
    (
        re.compile(r"^\s*(?:export\s+)?(?:pub\s+)?(?:public\s+)?enum\s+(\w+)", re.MULTILINE),
        SymbolType.ENUM,
    ),
    # module Name (Ruby)
    (re.compile(r"^\s*module\s+(\w+)", re.MULTILINE), SymbolType.CLASS),
    # type Name struct|interface (Go)
    (re.compile(r"^\s*type\s+(\w+)\s+(?:struct|interface)", re.MULTILINE), SymbolType.CLASS),
]

IMPORT_PATTERNS = [
    re.compile(r"""^\s*import\s+.*?from\s+['"]([^'"]+)['"]""", re.MULTILINE),
    re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)"""),
    re.compile(r"""^\s*import\s+['"]([^'"]+)['"]""", re.MULTILINE),
    re.compile(r"^\s*import\s+([\w.]+)\s*;", re.MULTILINE),
    re.compile(r"^\s*use\s+([\w:]+)", re.MULTILINE),
]

LEADING_COMMENT = re.compile(r"\A\s*(?:/\*\*?(.*?)\*/|((?:\s*(?://|#)[^\n]*\n)+))", re.DOTALL)


class FallbackParser(BaseParser):
    """Regex-based fallback parser for languages without dedicated parsers.

    Features:
        - Detects common function patterns (func, fn, def, function, arrows)
        - Detects common class/type patterns (class, struct, trait, interface, enum)
        - Guesses language from file extension
        - Never fails - always returns a successful result
    """

    @property
    def supported_extensions(self) -> list[str]:
        """All known extensions; can_parse() accepts any file regardless."""
        return list(EXTENSION_LANGUAGES.keys())

    @property
    def language_name(self) -> str:
        """Human-readable language name."""
        return "Generic"

    def can_parse(self, file_path: Path) -> bool:
        """The fallback parser accepts any file."""
        return True

    def parse(self, file_path: Path, content: str) -> ParseResult:
        """Parse file content and extract symbols using regex patterns.

        Args:
            file_path: Path to the file (used for language detection).
            content: File content as string.

        Returns:
            ParseResult with extracted symbols (always successful).
        """
        language = EXTENSION_LANGUAGES.get(file_path.suffix.lower(), "text")
        symbols: list[ParsedSymbol] = []

        for pattern, symbol_type in FUNCTION_PATTERNS + CLASS_PATTERNS:
            for match in pattern.finditer(content):
                name = match.group(1)
                line_num = content[: match.start(1)].count("\n") + 1
                symbols.append(
                    ParsedSymbol(
                        name=name,
                        symbol_type=symbol_type,
                        start_line=line_num,
                        end_line=self._estimate_end_line(content, match.start(), line_num),
                        signature=match.group(0).strip(),
                        exported=self._is_exported(language, name, match.group(0)),
                    )
                )

        symbols = self._deduplicate_symbols(symbols)
        symbols.sort(key=lambda s: s.start_line)

        imports: list[str] = []
        for pattern in IMPORT_PATTERNS:
            imports.extend(m.group(1) for m in pattern.finditer(content))

        line_count = content.count("\n")
        if content and not content.endswith("\n"):
            line_count += 1

        parsed_file = ParsedFile(
            path=str(file_path),
            language=language,
            symbols=symbols,
            imports=list(dict.fromkeys(imports)),
            docstring=self._leading_comment(content),
            line_count=line_count,
        )

        return ParseResult.success(parsed_file)

    def _is_exported(self, language: str, name: str, declaration: str) -> bool:
        if language in ("javascript", "typescript"):
            return declaration.lstrip().startswith("export")
        if language == "go":
            return name[:1].isupper()
        return not name.startswith("_")

    def _leading_comment(self, content: str) -> str | None:
        """Text of a block or line comment at the top of the file."""
        match = LEADING_COMMENT.match(content)
        if not match:
            return None
        raw = match.group(1) if match.group(1) is not None else match.group(2)
        lines = [re.sub(r"^\s*(?://+|#+|\*+)\s?", "", line) for line in raw.splitlines()]
        text = "\n".join(line.rstrip() for line in lines).strip()
        if not text or text.startswith("!"):
            return None
        return text

    def _estimate_end_line(self, content: str, start_pos: int, start_line: int) -> int:
        """Estimate the end line of a code block.

        This is a rough approximation that looks for balanced braces
        or an `end` keyword.

        Args:
            content: Full file content.
            start_pos: Position in content where the symbol starts.
            start_line: Line number where the symbol starts.

        Returns:
            Estimated end line number.
        """
        lines = content[start_pos:].split("\n")

        brace_count = 0
        found_open_brace = False

        for i, line in enumerate(lines[:200]):
            for char in line:
                if char == "{":
                    brace_count += 1
                    found_open_brace = True
                elif char == "}":
                    brace_count -= 1
                    if found_open_brace and brace_count == 0:
                        return start_line + i

            if line.strip() == "end" and i > 0:
                return start_line + i

        # Default: assume block is about 10 lines
        return min(start_line + 10, start_line + len(lines) - 1)

    def _deduplicate_symbols(self, symbols: list[ParsedSymbol]) -> list[ParsedSymbol]:
        """Remove duplicate symbols (same name and start line)."""
        seen: set[tuple[str, int]] = set()
        unique: list[ParsedSymbol] = []

        for symbol in symbols:
            key = (symbol.name, symbol.start_line)
            if key not in seen:
                seen.add(key)
                unique.append(symbol)

        return unique
