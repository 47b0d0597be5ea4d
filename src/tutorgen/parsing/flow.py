"""Control-flow tracing for chapter sequence diagrams.

Traces the calls, branches and loops inside one symbol, in source order.
Python is traced through its AST; other languages use an indentation-based
line scan, which is coarse but never fails.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator

from tutorgen.parsing.models import ParsedFile, ParsedSymbol, SymbolType
from tutorgen.repo.models import SourceFile

# Methods preferred as the entry point when a class is traced
ENTRY_METHOD_NAMES = (
    "run",
    "__call__",
    "execute",
    "process",
    "handle",
    "generate",
    "build",
    "scan",
    "main",
)

MAX_LABEL_LENGTH = 40


class StepKind(Enum):
    """Kinds of traced control-flow steps."""

    CALL = "call"
    BRANCH = "branch"
    LOOP = "loop"


@dataclass(frozen=True)
class FlowStep:
    """One step of a traced control flow.

    Attributes:
        kind: Call, branch or loop.
        label: Call target for calls, condition text for branches and loops.
        line: Source line of the step.
        arms: For branches, one (label, steps) pair per alternative.
            For loops, a single ("", body) pair.
    """

    kind: StepKind
    label: str
    line: int
    arms: tuple[tuple[str, tuple["FlowStep", ...]], ...] = ()

    def walk(self) -> Iterator["FlowStep"]:
        yield self
        for _, steps in self.arms:
            for step in steps:
                yield from step.walk()


@dataclass(frozen=True)
class ControlFlow:
    """Traced control flow of a single symbol.

    Attributes:
        path: File the symbol lives in.
        symbol: Qualified name of the traced symbol.
        steps: Top-level steps in source order.
    """

    path: str
    symbol: str
    steps: tuple[FlowStep, ...] = ()

    def walk(self) -> Iterator[FlowStep]:
        for step in self.steps:
            yield from step.walk()

    @property
    def call_count(self) -> int:
        return sum(1 for step in self.walk() if step.kind is StepKind.CALL)

    @property
    def is_trivial(self) -> bool:
        """True when the flow is a straight sequence with no branch or loop."""
        return all(step.kind is StepKind.CALL for step in self.walk())


def _short(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > MAX_LABEL_LENGTH:
        return text[: MAX_LABEL_LENGTH - 3] + "..."
    return text


def pick_entry_symbol(parsed: ParsedFile, symbol_name: str) -> ParsedSymbol | None:
    """Resolve the symbol whose flow represents symbol_name.

    A class resolves to its entry method: a well-known name such as run or
    execute when present, otherwise its longest public method.
    """
    symbol = parsed.find_symbol(symbol_name)
    if symbol is None or symbol.symbol_type is not SymbolType.CLASS:
        return symbol

    methods = [
        s for s in parsed.symbols if s.parent == symbol.name and s.symbol_type is SymbolType.METHOD
    ]
    by_name = {m.name: m for m in methods}
    for name in ENTRY_METHOD_NAMES:
        if name in by_name:
            return by_name[name]
    public = [m for m in methods if not m.name.startswith("_")]
    if not public:
        return symbol
    return max(public, key=lambda m: (m.end_line - m.start_line, -m.start_line))


def trace_flow(source: SourceFile, parsed: ParsedFile, symbol_name: str) -> ControlFlow | None:
    """Trace the control flow of a symbol.

    Args:
        source: Scanned file containing the symbol.
        parsed: Parse result for the same file.
        symbol_name: Plain or qualified symbol name.

    Returns:
        ControlFlow, or None when the symbol cannot be found.
    """
    symbol = pick_entry_symbol(parsed, symbol_name)
    if symbol is None:
        return None

    if source.language == "python":
        steps = _trace_python(source.content, symbol)
        if steps is not None:
            return ControlFlow(path=source.path, symbol=symbol.qualified_name, steps=steps)

    lines = source.lines(symbol.start_line + 1, symbol.end_line)
    numbered = [
        (symbol.start_line + 1 + offset, text)
        for offset, text in enumerate(lines)
        if text.strip() and not COMMENT_LINE.match(text)
    ]
    return ControlFlow(
        path=source.path,
        symbol=symbol.qualified_name,
        steps=_trace_lines(numbered, skip_name=symbol.name),
    )


# =============================================================================
# Python
# =============================================================================


def _find_definition(tree: ast.AST, symbol: ParsedSymbol) -> ast.AST | None:
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            if node.name == symbol.name and node.end_lineno is not None:
                if node.lineno <= symbol.end_line and node.end_lineno >= symbol.start_line:
                    return node
    return None


def _call_name(node: ast.Call) -> str | None:
    func = node.func
    parts = []
    while isinstance(func, ast.Attribute):
        parts.append(func.attr)
        func = func.value
    if isinstance(func, ast.Name):
        parts.append(func.id)
    # Chained calls such as get_client().send() keep only the method
    if not parts:
        return None
    return ".".join(reversed(parts))


class _CallCollector(ast.NodeVisitor):
    """Collects calls in evaluation order, skipping nested scopes."""

    def __init__(self):
        self.calls: list[ast.Call] = []

    def visit_Call(self, node: ast.Call) -> None:
        # Arguments are evaluated before the call itself
        self.generic_visit(node)
        self.calls.append(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        return

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        return

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        return

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        return


def _calls_in(*nodes: ast.AST | None) -> list[FlowStep]:
    steps = []
    for node in nodes:
        if node is None:
            continue
        collector = _CallCollector()
        collector.visit(node)
        for call in collector.calls:
            name = _call_name(call)
            if name:
                steps.append(FlowStep(StepKind.CALL, name, call.lineno))
    return steps


def _trace_python(content: str, symbol: ParsedSymbol) -> tuple[FlowStep, ...] | None:
    try:
        tree = ast.parse(content)
    except (SyntaxError, ValueError):
        return None
    node = _find_definition(tree, symbol)
    if node is None:
        return None
    body = list(node.body)  # type: ignore[attr-defined]
    if isinstance(node, ast.ClassDef):
        body = [n for n in body if not isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))]
    return tuple(_trace_block(body))


def _trace_block(statements: list[ast.stmt]) -> list[FlowStep]:
    steps: list[FlowStep] = []
    for stmt in statements:
        steps.extend(_trace_statement(stmt))
    return steps


def _trace_statement(stmt: ast.stmt) -> list[FlowStep]:
    if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        return []

    if isinstance(stmt, ast.If):
        steps = _calls_in(stmt.test)
        arms = [(_short(ast.unparse(stmt.test)), tuple(_trace_block(stmt.body)))]
        orelse = stmt.orelse
        # Flatten elif chains into extra arms
        while len(orelse) == 1 and isinstance(orelse[0], ast.If):
            elif_node = orelse[0]
            arms.append(
                (_short(f"elif {ast.unparse(elif_node.test)}"), tuple(_trace_block(elif_node.body)))
            )
            orelse = elif_node.orelse
        if orelse:
            arms.append(("else", tuple(_trace_block(orelse))))
        steps.append(FlowStep(StepKind.BRANCH, arms[0][0], stmt.lineno, tuple(arms)))
        return steps

    if isinstance(stmt, ast.Match):
        steps = _calls_in(stmt.subject)
        arms = tuple(
            (_short(f"case {ast.unparse(case.pattern)}"), tuple(_trace_block(case.body)))
            for case in stmt.cases
        )
        label = _short(f"match {ast.unparse(stmt.subject)}")
        steps.append(FlowStep(StepKind.BRANCH, label, stmt.lineno, arms))
        return steps

    if isinstance(stmt, (ast.Try, ast.TryStar)):
        arms = [("try", tuple(_trace_block(stmt.body + stmt.orelse)))]
        for handler in stmt.handlers:
            caught = ast.unparse(handler.type) if handler.type is not None else "Exception"
            arms.append((_short(f"except {caught}"), tuple(_trace_block(handler.body))))
        steps = [FlowStep(StepKind.BRANCH, "try", stmt.lineno, tuple(arms))]
        steps.extend(_trace_block(stmt.finalbody))
        return steps

    if isinstance(stmt, (ast.For, ast.AsyncFor)):
        steps = _calls_in(stmt.iter)
        label = _short(f"for {ast.unparse(stmt.target)} in {ast.unparse(stmt.iter)}")
        body = tuple(_trace_block(stmt.body))
        steps.append(FlowStep(StepKind.LOOP, label, stmt.lineno, (("", body),)))
        steps.extend(_trace_block(stmt.orelse))
        return steps

    if isinstance(stmt, ast.While):
        label = _short(f"while {ast.unparse(stmt.test)}")
        body = _calls_in(stmt.test) + _trace_block(stmt.body)
        steps = [FlowStep(StepKind.LOOP, label, stmt.lineno, (("", tuple(body)),))]
        steps.extend(_trace_block(stmt.orelse))
        return steps

    if isinstance(stmt, (ast.With, ast.AsyncWith)):
        steps = []
        for item in stmt.items:
            steps.extend(_calls_in(item.context_expr))
        steps.extend(_trace_block(stmt.body))
        return steps

    return _calls_in(stmt)


# =============================================================================
# Other languages
# =============================================================================

COMMENT_LINE = re.compile(r"^\s*(//|#|/\*|\*|--)")
BRANCH_LINE = re.compile(r"^(?:if|unless|switch|match|case|when|select)\b\s*(.*)$")
ELSE_LINE = re.compile(r"^(?:else\s+if|elif|elsif|else|catch|except|rescue|default)\b\s*(.*)$")
TRY_LINE = re.compile(r"^(?:try|begin)\b")
LOOP_LINE = re.compile(r"^(?:for|foreach|while|loop|do|until)\b\s*(.*)$")
ITERATOR_CALL = re.compile(r"\.(?:forEach|map|each|filter|reduce)\s*\(")
CALL_PATTERN = re.compile(r"\b([A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*)\s*\(")

NOT_CALLS = frozenset(
    {
        "if",
        "for",
        "foreach",
        "while",
        "switch",
        "catch",
        "return",
        "function",
        "match",
        "when",
        "sizeof",
        "typeof",
        "super",
        "elif",
        "else",
    }
)


def _indent(text: str) -> int:
    expanded = text.expandtabs(4)
    return len(expanded) - len(expanded.lstrip())


def _line_calls(lineno: int, text: str, skip_name: str) -> list[FlowStep]:
    steps = []
    for match in CALL_PATTERN.finditer(text):
        name = match.group(1)
        if name in NOT_CALLS or name == skip_name:
            continue
        steps.append(FlowStep(StepKind.CALL, name, lineno))
    return steps


def _condition(text: str) -> str:
    return _short(text.rstrip("{:").strip().strip("()").strip() or "condition")


def _trace_lines(lines: list[tuple[int, str]], skip_name: str) -> tuple[FlowStep, ...]:
    steps: list[FlowStep] = []
    i = 0
    while i < len(lines):
        lineno, text = lines[i]
        indent = _indent(text)
        stripped = text.strip().lstrip("}").strip()

        end = i + 1
        while end < len(lines) and _indent(lines[end][1]) > indent:
            end += 1
        body = _trace_lines(lines[i + 1 : end], skip_name)

        else_match = ELSE_LINE.match(stripped)
        branch_match = BRANCH_LINE.match(stripped)
        loop_match = LOOP_LINE.match(stripped)

        if else_match and steps and steps[-1].kind is StepKind.BRANCH:
            previous = steps[-1]
            label = _short(stripped.rstrip("{:").strip())
            steps[-1] = replace(previous, arms=previous.arms + ((label, body),))
        elif TRY_LINE.match(stripped):
            steps.append(FlowStep(StepKind.BRANCH, "try", lineno, (("try", body),)))
        elif branch_match:
            label = _condition(branch_match.group(1))
            steps.append(FlowStep(StepKind.BRANCH, label, lineno, ((label, body),)))
        elif loop_match or ITERATOR_CALL.search(stripped):
            label = _condition(loop_match.group(1) if loop_match else stripped)
            steps.append(FlowStep(StepKind.LOOP, label, lineno, (("", body),)))
        else:
            steps.extend(_line_calls(lineno, stripped, skip_name))
            steps.extend(body)
        i = end
    return tuple(steps)
