"""Python and fallback parser tests."""

from pathlib import Path

from tutorgen.parsing import (
    FallbackParser,
    ParserRegistry,
    PythonParser,
    ReferenceType,
    SymbolType,
)
from tutorgen.repo.models import SourceFile

SAMPLE = '''\
"""Module docstring."""

import os
from pathlib import Path

LIMIT = 10


class Worker(Base):
    """Does the work."""

    def run(self):
        self.helper()
        return Result()

    def _private(self):
        pass


def main():
    Worker().run()


def _hidden():
    pass
'''


def parse(content: str = SAMPLE):
    result = PythonParser().parse(Path("pkg/worker.py"), content)
    assert result.ok
    return result.file


def test_extracts_classes_functions_and_methods():
    """Top-level definitions and methods become symbols."""
    parsed = parse()

    by_name = {s.qualified_name: s for s in parsed.symbols}
    assert by_name["Worker"].symbol_type is SymbolType.CLASS
    assert by_name["Worker.run"].symbol_type is SymbolType.METHOD
    assert by_name["main"].symbol_type is SymbolType.FUNCTION
    assert by_name["LIMIT"].symbol_type is SymbolType.CONSTANT


def test_line_ranges_and_docstrings():
    """Symbols carry 1-based inclusive ranges and docstrings."""
    parsed = parse()

    worker = parsed.find_symbol("Worker")
    assert (worker.start_line, worker.end_line) == (9, 17)
    assert worker.docstring == "Does the work."
    assert parsed.docstring == "Module docstring."


def test_public_symbols_put_classes_first():
    """Private names are not public; classes come before functions."""
    parsed = parse()

    assert [s.name for s in parsed.public_symbols] == ["Worker", "LIMIT", "main"]


def test_dunder_all_controls_exports():
    """A literal __all__ decides which names are exported."""
    parsed = parse(SAMPLE + '\n__all__ = ["main"]\n')

    assert [s.name for s in parsed.public_symbols] == ["main"]


def test_imports_and_references():
    """Imports, calls, instantiations and inheritance are recorded."""
    parsed = parse()

    assert parsed.imports == ["os", "pathlib.Path"]
    kinds = {(r.source, r.target): r.reference_type for r in parsed.references}
    assert kinds[("Worker", "Base")] is ReferenceType.INHERITS
    assert kinds[("Worker.run", "self.helper")] is ReferenceType.CALLS
    assert kinds[("Worker.run", "Result")] is ReferenceType.INSTANTIATES


def test_syntax_error_is_a_failure():
    """Unparseable Python returns a failed ParseResult."""
    result = PythonParser().parse(Path("bad.py"), "def broken(:\n")

    assert not result.ok
    assert "Syntax error" in result.error


def test_fallback_parser_finds_javascript_symbols():
    """The regex parser finds exported JS classes and functions."""
    content = (
        "// Shopping cart.\n"
        "export class Cart {\n"
        "  add(item) {\n"
        "    this.items.push(item);\n"
        "  }\n"
        "}\n"
        "\n"
        "export function total(cart) {\n"
        "  return 0;\n"
        "}\n"
        "function helper() {}\n"
    )

    result = FallbackParser().parse(Path("cart.js"), content)

    assert result.ok
    names = {s.name: s for s in result.file.symbols}
    assert names["Cart"].symbol_type is SymbolType.CLASS
    assert names["Cart"].exported
    assert names["total"].exported
    assert not names["helper"].exported
    assert result.file.docstring == "Shopping cart."


def test_registry_falls_back_on_syntax_errors():
    """A Python file that does not parse still yields a ParsedFile."""
    content = "def ok():\n  x = (\n"
    source = SourceFile(path="pkg/broken.py", language="python", content=content, size=len(content))

    parsed = ParserRegistry().parse_source(source)

    assert parsed.path == "pkg/broken.py"
    assert parsed.find_symbol("ok") is not None


def test_registry_parse_all_keys_by_path(sample_files):
    """parse_all maps every scanned path to its ParsedFile."""
    parsed = ParserRegistry().parse_all(sample_files)

    assert set(parsed) == {f.path for f in sample_files}
    assert parsed["app/scanner.py"].find_symbol("Scanner.scan") is not None
