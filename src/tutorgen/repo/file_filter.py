"""File filtering with default excludes and .tutorignore support."""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Optional

from tutorgen.config import ConfigError, load_settings

logger = logging.getLogger(__name__)


DEFAULT_EXCLUDES = [
    # Hidden files and directories (.git, .venv, .pytest_cache, .env, ...)
    ".*",
    # Dependencies
    "node_modules",
    "vendor",
    "venv",
    "__pycache__",
    "*.pyc",
    # Build outputs
    "build",
    "dist",
    "target",
    "out",
    "*.egg-info",
    # Minified/bundled assets
    "*.min.js",
    "*.min.css",
    "*.bundle.js",
    "*.chunk.js",
    "*.map",
    # Lock files (large, not useful for docs)
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Cargo.lock",
    "poetry.lock",
    "Gemfile.lock",
    "composer.lock",
]


class FileFilter:
    """Filter files based on patterns and size limits."""

    def __init__(
        self,
        repo_path: Path,
        max_file_size_kb: Optional[int] = None,
        extra_excludes: list[str] | None = None,
        include_patterns: list[str] | None = None,
        ignore_path: Optional[Path] = None,
        binary_check_bytes: Optional[int] = None,
        minified_line_length: Optional[int] = None,
    ):
        """Initialize file filter.

        Args:
            repo_path: Path to repository root.
            max_file_size_kb: Maximum file size in KB. If None, uses settings.
            extra_excludes: Additional exclude patterns.
            include_patterns: If given, only files matching one of these globs
                (against the relative path or the file name) are kept.
            ignore_path: Path to ignore file. If None, uses the ignore file
                name from settings inside repo_path.
            binary_check_bytes: Bytes sampled for the NUL-byte binary check.
            minified_line_length: Average line length above which a file is
                treated as minified.
        """
        self.repo_path = repo_path

        ignore_filename = ".tutorignore"
        defaults = {"max_file_size_kb": 100, "binary_check_bytes": 1024, "minified": 500}
        try:
            settings = load_settings()
            ignore_filename = settings.paths.ignore_file
            defaults = {
                "max_file_size_kb": settings.files.max_file_size_kb,
                "binary_check_bytes": settings.files.binary_check_bytes,
                "minified": settings.files.minified_line_length,
            }
        except (ValueError, OSError, ConfigError):
            # Settings not available, use schema defaults
            pass

        if max_file_size_kb is None:
            max_file_size_kb = defaults["max_file_size_kb"]
        self.max_file_size_bytes = max_file_size_kb * 1024
        self.binary_check_bytes = binary_check_bytes or defaults["binary_check_bytes"]
        self.minified_line_length = minified_line_length or defaults["minified"]

        self.exclude_patterns = list(DEFAULT_EXCLUDES)
        if extra_excludes:
            self.exclude_patterns.extend(extra_excludes)
        self.include_patterns = list(include_patterns or [])

        if ignore_path is None:
            ignore_path = repo_path / ignore_filename

        if ignore_path.is_file():
            for line in ignore_path.read_text(encoding="utf-8", errors="ignore").splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    self.exclude_patterns.append(line)

    def _is_excluded(self, path: str, is_dir: bool = False) -> bool:
        """Check if path matches any exclude pattern.

        Args:
            path: Relative file or directory path.
            is_dir: True when path names a directory.

        Returns:
            True if path should be excluded.
        """
        parts = path.split("/")

        for pattern in self.exclude_patterns:
            # Trailing slash means "any directory component with this name"
            if pattern.endswith("/"):
                dir_pattern = pattern.rstrip("/")
                for part in parts if is_dir else parts[:-1]:
                    if fnmatch.fnmatch(part, dir_pattern):
                        return True
            # Patterns containing "/" match as path prefixes or full-path globs
            elif "/" in pattern:
                if path.startswith(pattern + "/") or path == pattern:
                    return True
                if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path, pattern + "/*"):
                    return True
            else:
                for part in parts:
                    if fnmatch.fnmatch(part, pattern):
                        return True
                if fnmatch.fnmatch(path, pattern):
                    return True

        return False

    def _is_included(self, path: str) -> bool:
        """Check if path matches an include pattern (always True without any)."""
        if not self.include_patterns:
            return True
        name = path.rsplit("/", 1)[-1]
        return any(
            fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(name, pattern)
            for pattern in self.include_patterns
        )

    def _is_binary(self, data: bytes) -> bool:
        """Check if raw file data appears to be binary.

        Args:
            data: File bytes (only the first binary_check_bytes are sampled).

        Returns:
            True if a NUL byte appears in the sample.
        """
        return b"\x00" in data[: self.binary_check_bytes]

    def _is_minified(self, content: str) -> bool:
        """Check if content appears to be minified based on line length.

        Minified files typically have extremely long lines (often the
        entire file on one line). We sample the first 20 lines and
        check if the average length exceeds the threshold.

        Args:
            content: Decoded file content.

        Returns:
            True if file appears to be minified.
        """
        lines = content.split("\n")[:20]
        if not lines:
            return False
        avg_length = sum(len(line) for line in lines) / len(lines)
        return avg_length > self.minified_line_length

    def accepts_path(self, relative: str) -> bool:
        """Check the path-based rules (excludes and includes) for a file."""
        return not self._is_excluded(relative) and self._is_included(relative)

    def too_large(self, size: int) -> bool:
        return size > self.max_file_size_bytes

    def decode(self, data: bytes) -> str | None:
        """Decode file data, or return None if it is binary or minified.

        Args:
            data: Raw file bytes.

        Returns:
            Decoded text, or None when the file should be skipped.
        """
        if self._is_binary(data):
            return None
        content = data.decode("utf-8", errors="replace")
        if self._is_minified(content):
            return None
        return content

    def get_files(self) -> list[str]:
        """Get the relative paths that pass the path-based rules.

        Excluded directories are pruned without being descended into.
        Size and content checks happen when files are read.

        Returns:
            Sorted list of relative POSIX file paths.
        """
        files = []

        for dirpath, dirnames, filenames in os.walk(self.repo_path, onerror=self._walk_error):
            current = Path(dirpath)
            rel_dir = current.relative_to(self.repo_path).as_posix()
            prefix = "" if rel_dir == "." else rel_dir + "/"

            dirnames[:] = sorted(
                d for d in dirnames if not self._is_excluded(prefix + d, is_dir=True)
            )

            for filename in filenames:
                relative = prefix + filename
                if not (current / filename).is_file():
                    continue
                if self.accepts_path(relative):
                    files.append(relative)

        return sorted(files)

    def _walk_error(self, error: OSError) -> None:
        logger.warning(f"Skipping unreadable directory {error.filename}: {error.strerror}")
