"""Data models for code parsing."""

from dataclasses import dataclass, field
from enum import Enum


class ReferenceType(Enum):
    """Types of references between code entities."""

    CALLS = "calls"
    INSTANTIATES = "instantiates"
    INHERITS = "inherits"
    IMPORTS = "imports"


class SymbolType(Enum):
    """Types of code symbols that can be extracted."""

    FUNCTION = "function"
    CLASS = "class"
    METHOD = "method"
    VARIABLE = "variable"
    CONSTANT = "constant"
    INTERFACE = "interface"
    ENUM = "enum"


@dataclass
class ParsedSymbol:
    """A parsed code symbol (function, class, etc.)."""

    name: str
    symbol_type: SymbolType
    start_line: int
    end_line: int
    docstring: str | None = None
    signature: str | None = None
    parent: str | None = None  # For methods, the class name
    exported: bool = True

    @property
    def qualified_name(self) -> str:
        return f"{self.parent}.{self.name}" if self.parent else self.name


@dataclass
class Reference:
    """A reference from one code entity to another."""

    source: str  # e.g., "Scanner.scan"
    target: str  # e.g., "FileFilter" or "self.reader.read"
    reference_type: ReferenceType
    line: int


@dataclass
class ParsedFile:
    """Result of parsing a single file."""

    path: str
    language: str
    symbols: list[ParsedSymbol]
    imports: list[str] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    docstring: str | None = None  # Module-level docstring or leading comment
    line_count: int = 0

    @property
    def public_symbols(self) -> list[ParsedSymbol]:
        """Top-level exported symbols, classes first, in source order."""
        top = [s for s in self.symbols if s.parent is None and s.exported]
        return sorted(top, key=lambda s: (s.symbol_type is not SymbolType.CLASS, s.start_line))

    def find_symbol(self, name: str) -> ParsedSymbol | None:
        """Find a symbol by plain or qualified name."""
        for symbol in self.symbols:
            if symbol.qualified_name == name:
                return symbol
        for symbol in self.symbols:
            if symbol.name == name:
                return symbol
        return None


@dataclass
class ParseResult:
    """Result of a parse operation (success or failure)."""

    ok: bool
    file: ParsedFile | None
    error: str | None
    path: str | None = None

    @classmethod
    def success(cls, parsed_file: ParsedFile) -> "ParseResult":
        """Create a successful parse result."""
        return cls(ok=True, file=parsed_file, error=None, path=parsed_file.path)

    @classmethod
    def failure(cls, path: str, error: str) -> "ParseResult":
        """Create a failed parse result."""
        return cls(ok=False, file=None, error=error, path=path)
