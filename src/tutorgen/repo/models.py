"""Scanned repository data."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class SourceFile:
    """A file read from the target repository.

    Attributes:
        path: POSIX path relative to the repository root.
        language: Language tag derived from the file extension.
        content: Decoded file text.
        size: Size on disk in bytes.
    """

    path: str
    language: str
    content: str
    size: int

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def stem(self) -> str:
        return Path(self.name).stem

    @property
    def line_count(self) -> int:
        if not self.content:
            return 0
        return self.content.count("\n") + (0 if self.content.endswith("\n") else 1)

    def lines(self, start: int, end: int) -> list[str]:
        """Return lines start..end (1-indexed, inclusive)."""
        all_lines = self.content.splitlines()
        start = max(start, 1)
        end = min(end, len(all_lines))
        return all_lines[start - 1 : end]


@dataclass(frozen=True)
class RepositoryDescriptor:
    """Identifies the repository a tutorial job documents.

    Attributes:
        root: Absolute path of the repository root.
        name: Project name used in titles.
    """

    root: Path
    name: str

    @classmethod
    def from_path(cls, root: Path, name: str | None = None) -> "RepositoryDescriptor":
        root = Path(root).expanduser()
        resolved = root.resolve() if root.exists() else root.absolute()
        return cls(root=resolved, name=name or resolved.name or "project")
