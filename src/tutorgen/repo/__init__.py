"""Repository scanning."""

from tutorgen.repo.file_filter import DEFAULT_EXCLUDES, FileFilter
from tutorgen.repo.models import RepositoryDescriptor, SourceFile
from tutorgen.repo.scanner import RepositoryScanner, detect_language

__all__ = [
    "DEFAULT_EXCLUDES",
    "FileFilter",
    "RepositoryDescriptor",
    "RepositoryScanner",
    "SourceFile",
    "detect_language",
]
