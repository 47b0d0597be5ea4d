"""Repository scanner tests."""

import os
from pathlib import Path

import pytest

from tutorgen.errors import ScanError
from tutorgen.repo import RepositoryDescriptor, RepositoryScanner, SourceFile, detect_language


def test_scan_returns_sorted_source_files(sample_repo: Path):
    """Scanning yields one SourceFile per file, sorted by path."""
    files = RepositoryScanner(sample_repo).scan()

    paths = [f.path for f in files]
    assert paths == sorted(paths)
    assert "app/scanner.py" in paths
    assert "README.md" in paths


def test_scan_tags_languages(sample_repo: Path):
    """Languages come from file extensions."""
    files = {f.path: f for f in RepositoryScanner(sample_repo).scan()}

    assert files["app/scanner.py"].language == "python"
    assert files["README.md"].language == "markdown"


def test_scan_nonexistent_root_raises():
    """A missing root is a ScanError."""
    with pytest.raises(ScanError, match="does not exist"):
        RepositoryScanner(Path("/does/not/exist")).scan()


def test_scan_file_root_raises(tmp_path: Path):
    """A root that is a file is a ScanError."""
    root = tmp_path / "file.txt"
    root.write_text("not a directory")

    with pytest.raises(ScanError, match="not a directory"):
        RepositoryScanner(root).scan()


def test_scan_skips_binary_and_oversized_files(tmp_path: Path):
    """Binary and too-large files are skipped and recorded."""
    (tmp_path / "image.png").write_bytes(b"\x89PNG\x00\x00")
    (tmp_path / "big.py").write_text("x = 1\n" * 400)
    (tmp_path / "small.py").write_text("x = 1\n")

    scanner = RepositoryScanner(tmp_path, max_file_size_kb=1)
    files = scanner.scan()

    assert [f.path for f in files] == ["small.py"]
    assert dict(scanner.skipped) == {"big.py": "too large", "image.png": "binary or minified"}


def test_scan_applies_include_and_exclude_patterns(sample_repo: Path):
    """Include and exclude globs narrow the scan."""
    files = RepositoryScanner(
        sample_repo, include_patterns=["*.py"], exclude_patterns=["tests/"]
    ).scan()

    assert [f.path for f in files] == ["app/report.py", "app/scanner.py", "app/settings.py"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_scan_deduplicates_symlinked_files(tmp_path: Path):
    """A symlink to a scanned file is not read twice."""
    (tmp_path / "real.py").write_text("x = 1\n")
    (tmp_path / "alias.py").symlink_to(tmp_path / "real.py")

    files = RepositoryScanner(tmp_path).scan()

    assert len(files) == 1


def test_scan_is_deterministic(sample_repo: Path):
    """Two scans of an unchanged tree are equal."""
    assert RepositoryScanner(sample_repo).scan() == RepositoryScanner(sample_repo).scan()


def test_detect_language_unknown_extension():
    """Unknown extensions are tagged text."""
    assert detect_language("Makefile") == "text"
    assert detect_language("lib/App.TSX") == "typescript"


def test_source_file_lines_are_inclusive():
    """lines() returns the 1-indexed inclusive range, clamped to the file."""
    source = SourceFile(path="a.py", language="python", content="one\ntwo\nthree\n", size=14)

    assert source.lines(2, 3) == ["two", "three"]
    assert source.lines(0, 99) == ["one", "two", "three"]
    assert source.line_count == 3
    assert source.stem == "a"


def test_repository_descriptor_names_project_after_root(tmp_path: Path):
    """Without a name, the root directory name is used."""
    descriptor = RepositoryDescriptor.from_path(tmp_path / "demo")

    assert descriptor.name == "demo"
    assert descriptor.root.is_absolute()
    assert RepositoryDescriptor.from_path(tmp_path, "Custom").name == "Custom"
