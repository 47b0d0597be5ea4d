"""Control-flow tracing tests."""

from pathlib import Path

from conftest import REPORT_PY, SCANNER_PY, SETTINGS_PY

from tutorgen.parsing import FallbackParser, PythonParser, StepKind, trace_flow
from tutorgen.parsing.flow import pick_entry_symbol
from tutorgen.repo.models import SourceFile


def python_source(path: str, content: str):
    source = SourceFile(path=path, language="python", content=content, size=len(content))
    parsed = PythonParser().parse(Path(path), content).file
    return source, parsed


def test_class_resolves_to_entry_method():
    """A class is traced through a well-known entry method."""
    _, parsed = python_source("app/report.py", REPORT_PY)

    assert pick_entry_symbol(parsed, "Report").qualified_name == "Report.build"


def test_class_without_entry_method_uses_longest_public_method():
    """Without a well-known name the longest public method is chosen."""
    _, parsed = python_source("app/settings.py", SETTINGS_PY)

    assert pick_entry_symbol(parsed, "Settings").qualified_name == "Settings.get"


def test_straight_line_calls_are_trivial():
    """A body of plain calls has no branch or loop."""
    source, parsed = python_source("app/report.py", REPORT_PY)

    flow = trace_flow(source, parsed, "Report")

    assert [step.label for step in flow.steps] == ["Scanner", "scanner.scan"]
    assert flow.is_trivial
    assert flow.call_count == 2


def test_loops_and_branches_are_nested():
    """Loops contain their bodies; if/else becomes a branch with two arms."""
    source, parsed = python_source("app/scanner.py", SCANNER_PY)

    flow = trace_flow(source, parsed, "Scanner")

    assert flow.symbol == "Scanner.scan"
    assert not flow.is_trivial
    first, loop = flow.steps
    assert (first.kind, first.label) == (StepKind.CALL, "self.paths")
    assert loop.kind is StepKind.LOOP
    ((_, body),) = loop.arms
    assert [step.label for step in body] == ["path.endswith", "path.endswith('.py')"]
    branch = body[1]
    assert branch.kind is StepKind.BRANCH
    assert [label for label, _ in branch.arms] == ["path.endswith('.py')", "else"]
    assert [s.label for s in branch.arms[0][1]] == ["self.read", "results.append"]
    assert [s.label for s in branch.arms[1][1]] == ["skip"]


def test_nested_function_bodies_are_skipped():
    """Calls inside nested definitions and lambdas are not part of the flow."""
    content = (
        "def outer():\n"
        "    def inner():\n"
        "        hidden()\n"
        "    key = lambda x: secret(x)\n"
        "    visible(key)\n"
    )
    source, parsed = python_source("mod.py", content)

    flow = trace_flow(source, parsed, "outer")

    assert [step.label for step in flow.steps] == ["visible"]


def test_try_becomes_a_branch():
    """try/except arms are traced as alternatives."""
    content = (
        "def load():\n"
        "    try:\n"
        "        fetch()\n"
        "    except OSError:\n"
        "        report()\n"
    )
    source, parsed = python_source("mod.py", content)

    (step,) = trace_flow(source, parsed, "load").steps

    assert step.kind is StepKind.BRANCH
    assert [label for label, _ in step.arms] == ["try", "except OSError"]


def test_unknown_symbol_returns_none():
    """Tracing a missing symbol returns None."""
    source, parsed = python_source("app/report.py", REPORT_PY)

    assert trace_flow(source, parsed, "Missing") is None


def test_brace_language_flow():
    """Other languages are traced by indentation."""
    content = (
        "function load(items) {\n"
        "  for (const item of items) {\n"
        "    if (item.ok) {\n"
        "      save(item);\n"
        "    } else {\n"
        "      warn(item);\n"
        "    }\n"
        "  }\n"
        "  return done();\n"
        "}\n"
    )
    source = SourceFile(path="load.js", language="javascript", content=content, size=len(content))
    parsed = FallbackParser().parse(Path("load.js"), content).file

    flow = trace_flow(source, parsed, "load")

    loop, call = flow.steps
    assert (loop.kind, loop.label) == (StepKind.LOOP, "const item of items")
    assert (call.kind, call.label) == (StepKind.CALL, "done")
    (branch,) = loop.arms[0][1]
    assert [label for label, _ in branch.arms] == ["item.ok", "else"]
    assert [s.label for s in branch.arms[1][1]] == ["warn"]
