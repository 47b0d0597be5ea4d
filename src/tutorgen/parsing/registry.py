# src/tutorgen/parsing/registry.py
"""Parser registry for selecting appropriate parser."""

import logging
from pathlib import Path

from tutorgen.parsing.base import BaseParser
from tutorgen.parsing.fallback_parser import FallbackParser
from tutorgen.parsing.models import ParsedFile, ParseResult
from tutorgen.parsing.python_parser import PythonParser
from tutorgen.repo.models import SourceFile

logger = logging.getLogger(__name__)


class ParserRegistry:
    """Registry that selects the appropriate parser for a file.

    Parsers are tried in order of specificity, with the fallback
    parser used when no specific parser matches.
    """

    def __init__(self):
        """Initialize registry with all available parsers."""
        self._parsers: list[BaseParser] = [PythonParser()]
        self._fallback = FallbackParser()

    def get_parser(self, file_path: Path) -> BaseParser:
        """Get the appropriate parser for a file.

        Args:
            file_path: Path to file.

        Returns:
            Parser instance that can handle the file.
        """
        for parser in self._parsers:
            if parser.can_parse(file_path):
                return parser
        return self._fallback

    def parse_file(self, file_path: Path, content: str) -> ParseResult:
        """Parse a file using the appropriate parser.

        Args:
            file_path: Path to file.
            content: File content.

        Returns:
            ParseResult from the selected parser.
        """
        parser = self.get_parser(file_path)
        return parser.parse(file_path, content)

    def parse_source(self, source: SourceFile) -> ParsedFile:
        """Parse a scanned file, falling back to regex parsing on failure.

        Args:
            source: Scanned file.

        Returns:
            ParsedFile whose path is the scanned relative path.
        """
        result = self.parse_file(Path(source.path), source.content)
        if not result.ok or result.file is None:
            logger.debug(f"Falling back to regex parsing for {source.path}: {result.error}")
            result = self._fallback.parse(Path(source.path), source.content)
        parsed = result.file
        assert parsed is not None
        parsed.path = source.path
        return parsed

    def parse_all(self, sources: list[SourceFile]) -> dict[str, ParsedFile]:
        """Parse every scanned file, keyed by relative path."""
        return {source.path: self.parse_source(source) for source in sources}
