"""Repository scanner: walks a source tree and reads the files worth documenting."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from tutorgen.config import ConfigError, load_settings
from tutorgen.constants.files import EXTENSION_LANGUAGES
from tutorgen.errors import ScanError
from tutorgen.repo.file_filter import FileFilter
from tutorgen.repo.models import SourceFile

logger = logging.getLogger(__name__)


def detect_language(path: str) -> str:
    """Language tag for a file path, "text" when the extension is unknown."""
    suffix = os.path.splitext(path)[1].lower()
    return EXTENSION_LANGUAGES.get(suffix, "text")


class RepositoryScanner:
    """Produces the ordered, deduplicated SourceFile set for a repository.

    Directory walking is single-threaded; file reads fan out to a bounded
    thread pool because they are I/O-bound.
    """

    def __init__(
        self,
        root: Path,
        include_patterns: list[str] | None = None,
        exclude_patterns: list[str] | None = None,
        max_file_size_kb: Optional[int] = None,
        max_workers: Optional[int] = None,
        ignore_path: Optional[Path] = None,
    ):
        """Initialize the scanner.

        Args:
            root: Repository root directory.
            include_patterns: Globs a file must match (any) to be scanned.
            exclude_patterns: Globs excluded on top of the defaults.
            max_file_size_kb: Size cap; larger files are skipped.
            max_workers: Reader threads. If None, uses settings.
            ignore_path: Ignore file overriding <root>/.tutorignore.
        """
        self.root = Path(root)
        self.include_patterns = list(include_patterns or [])
        self.exclude_patterns = list(exclude_patterns or [])
        self.max_file_size_kb = max_file_size_kb
        self.ignore_path = ignore_path

        if max_workers is None:
            max_workers = 8
            try:
                max_workers = load_settings().files.scan_workers
            except (ValueError, OSError, ConfigError):
                pass
        self.max_workers = max(1, max_workers)

        self.skipped: list[tuple[str, str]] = []

    def _check_root(self) -> None:
        if not self.root.exists():
            raise ScanError(f"Repository root does not exist: {self.root}")
        if not self.root.is_dir():
            raise ScanError(f"Repository root is not a directory: {self.root}")
        try:
            with os.scandir(self.root) as entries:
                next(entries, None)
        except OSError as e:
            raise ScanError(f"Repository root is not readable: {self.root}: {e}") from e

    def scan(self) -> list[SourceFile]:
        """Scan the repository.

        Returns:
            SourceFiles sorted by path, one per distinct file on disk.

        Raises:
            ScanError: If the root path is missing, not a directory or unreadable.
        """
        self._check_root()
        self.skipped = []

        file_filter = FileFilter(
            self.root,
            max_file_size_kb=self.max_file_size_kb,
            extra_excludes=self.exclude_patterns,
            include_patterns=self.include_patterns,
            ignore_path=self.ignore_path,
        )
        candidates = self._dedupe_links(file_filter.get_files())
        logger.info(f"Scanning {len(candidates)} candidate files under {self.root}")

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            results = list(pool.map(lambda rel: self._read(file_filter, rel), candidates))

        files = [f for f in results if f is not None]
        logger.info(f"Scanned {len(files)} files ({len(self.skipped)} skipped)")
        return files

    def _dedupe_links(self, paths: list[str]) -> list[str]:
        """Drop paths that resolve to a file already listed (symlinks)."""
        seen: set[str] = set()
        unique: list[str] = []
        for rel in paths:
            try:
                real = os.path.realpath(self.root / rel)
            except OSError:
                real = str(self.root / rel)
            if real in seen:
                logger.debug(f"Skipping duplicate path {rel}")
                continue
            seen.add(real)
            unique.append(rel)
        return unique

    def _read(self, file_filter: FileFilter, relative: str) -> SourceFile | None:
        path = self.root / relative
        try:
            size = path.stat().st_size
            if file_filter.too_large(size):
                self.skipped.append((relative, "too large"))
                return None
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Skipping unreadable file {relative}: {e}")
            self.skipped.append((relative, "unreadable"))
            return None

        content = file_filter.decode(data)
        if content is None:
            self.skipped.append((relative, "binary or minified"))
            return None

        return SourceFile(
            path=relative,
            language=detect_language(relative),
            content=content,
            size=size,
        )
