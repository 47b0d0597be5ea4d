"""Shared pytest fixtures for all tests."""

from pathlib import Path
from textwrap import dedent

import pytest

from tutorgen.config import Config, GenerationConfig, _defaults, load_settings
from tutorgen.graph.builder import RelationshipBuilder
from tutorgen.graph.models import Abstraction, AbstractionGraph, Relationship, SourceLocation
from tutorgen.repo.models import SourceFile

ENV_VARS = (
    "TUTORGEN_CONFIG",
    "TUTORGEN_OUTPUT_DIR",
    "PARALLEL_LIMIT",
    "ACTIVE_PROVIDER",
    "ACTIVE_MODEL",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test against schema defaults, with a fresh settings cache."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


REPORT_PY = '''\
"""Report assembly."""

from app.scanner import Scanner


class Report:
    """Builds a report of the scanned files."""

    def __init__(self, root):
        self.root = root

    def build(self):
        scanner = Scanner(self.root)
        return scanner.scan()
'''

SCANNER_PY = '''\
"""Directory scanning."""

from app.settings import Settings


class Scanner:
    """Walks a directory and reads Python files."""

    def __init__(self, root):
        self.root = root
        self.settings = Settings()

    def scan(self):
        results = []
        for path in self.paths():
            if path.endswith(".py"):
                results.append(self.read(path))
            else:
                skip(path)
        return results

    def paths(self):
        return sorted(self.root.iterdir())

    def read(self, path):
        return path.read_text()


def skip(path):
    return None
'''

SETTINGS_PY = '''\
"""Runtime configuration."""


class Settings:
    """Holds runtime configuration values."""

    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)
'''

TEST_SCANNER_PY = '''\
from app.scanner import Scanner


def test_scan(tmp_path):
    assert Scanner(tmp_path).scan() == []
'''


def write_repo(root: Path) -> Path:
    """Write the sample repository used by pipeline tests."""
    files = {
        "README.md": "# Sample\n\nA tiny scanner that reports on Python files.\n",
        "app/report.py": REPORT_PY,
        "app/scanner.py": SCANNER_PY,
        "app/settings.py": SETTINGS_PY,
        "tests/test_scanner.py": TEST_SCANNER_PY,
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def sample_repo(tmp_path) -> Path:
    """A small Python repository with three related modules."""
    return write_repo(tmp_path / "sample")


@pytest.fixture
def sample_files() -> list[SourceFile]:
    """The sample repository's Python modules as scanned files."""
    contents = {
        "app/report.py": REPORT_PY,
        "app/scanner.py": SCANNER_PY,
        "app/settings.py": SETTINGS_PY,
    }
    return [
        SourceFile(path=path, language="python", content=content, size=len(content))
        for path, content in contents.items()
    ]


def make_config(**generation) -> Config:
    """Default Config with generation settings overridden."""
    values = {**_defaults("generation"), "retry_backoff_seconds": 0.0, **generation}
    return Config(generation=GenerationConfig(**values))


def make_abstraction(name: str, category: str = "Business Logic", **kwargs) -> Abstraction:
    """Abstraction backed by a one-file location named after it."""
    slug = name.lower().replace(" ", "-")
    return Abstraction(
        id=kwargs.pop("id", slug),
        name=name,
        summary=kwargs.pop("summary", f"{name} does its job."),
        category=category,
        locations=kwargs.pop("locations", (SourceLocation(f"src/{slug}.py", 1, 10),)),
        **kwargs,
    )


def make_graph(names: list[str], edges: list[tuple[int, int]], label: str = "uses"):
    """Graph over named abstractions with the given index edges."""
    return AbstractionGraph(
        tuple(make_abstraction(name) for name in names),
        tuple(Relationship(source, target, label) for source, target in edges),
    )


@pytest.fixture
def test_config() -> Config:
    """Config with instant retries."""
    return make_config()


def strip(text: str) -> str:
    return dedent(text).lstrip("\n")


def sample_abstractions(files: list[SourceFile]) -> list[Abstraction]:
    """Abstractions covering the sample modules, one per file."""
    lengths = {f.path: f.line_count for f in files}

    def location(path):
        return (SourceLocation(path, 1, lengths[path]),)

    return [
        make_abstraction("Report", locations=location("app/report.py"), symbols=("Report",)),
        make_abstraction(
            "Scanner",
            category="Infrastructure",
            locations=location("app/scanner.py"),
            symbols=("Scanner", "skip"),
        ),
        make_abstraction(
            "Settings",
            category="Configuration",
            locations=location("app/settings.py"),
            symbols=("Settings",),
        ),
    ]


@pytest.fixture
def sample_graph(sample_files) -> AbstractionGraph:
    """Relationship graph over the sample modules."""
    return RelationshipBuilder(sample_files).build(sample_abstractions(sample_files))
