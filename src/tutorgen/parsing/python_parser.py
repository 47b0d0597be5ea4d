"""Python AST parser using the built-in ast module."""

import ast
from pathlib import Path

from tutorgen.parsing.base import BaseParser
from tutorgen.parsing.models import (
    ParsedFile,
    ParsedSymbol,
    ParseResult,
    Reference,
    ReferenceType,
    SymbolType,
)


class PythonParser(BaseParser):
    """Parser for Python source files using the ast module."""

    @property
    def supported_extensions(self) -> list[str]:
        """File extensions this parser handles."""
        return [".py", ".pyi"]

    @property
    def language_name(self) -> str:
        """Human-readable language name."""
        return "Python"

    def parse(self, file_path: Path, content: str) -> ParseResult:
        """Parse Python file content and extract symbols.

        Args:
            file_path: Path to the file (for error messages).
            content: File content as string.

        Returns:
            ParseResult with extracted symbols or error.
        """
        try:
            tree = ast.parse(content, filename=str(file_path))
        except (SyntaxError, ValueError) as e:
            return ParseResult.failure(str(file_path), f"Syntax error: {e}")

        symbols: list[ParsedSymbol] = []
        imports: list[str] = []
        references: list[Reference] = []
        exported_names = self._dunder_all(tree)

        for node in ast.iter_child_nodes(tree):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                symbols.append(self._parse_function(node, parent=None))
                references.extend(self._extract_calls(node, node.name))
            elif isinstance(node, ast.ClassDef):
                symbols.extend(self._parse_class(node))
                references.extend(self._extract_inheritance(node))
                for item in node.body:
                    if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                        references.extend(self._extract_calls(item, f"{node.name}.{item.name}"))
            elif isinstance(node, ast.Import):
                imports.extend(alias.name for alias in node.names)
            elif isinstance(node, ast.ImportFrom):
                module = node.module or ""
                imports.extend(
                    f"{module}.{alias.name}" if module else alias.name for alias in node.names
                )
            elif isinstance(node, ast.Assign):
                symbols.extend(self._parse_assignment(node))

        for symbol in symbols:
            if symbol.parent is not None:
                continue
            if exported_names is not None:
                symbol.exported = symbol.name in exported_names
            else:
                symbol.exported = not symbol.name.startswith("_")

        parsed_file = ParsedFile(
            path=str(file_path),
            language="python",
            symbols=symbols,
            imports=imports,
            references=references,
            docstring=ast.get_docstring(tree),
            line_count=content.count("\n") + 1,
        )

        return ParseResult.success(parsed_file)

    def _dunder_all(self, tree: ast.Module) -> set[str] | None:
        """Names listed in a literal module-level __all__, if present."""
        for node in tree.body:
            if not isinstance(node, ast.Assign):
                continue
            if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets):
                continue
            if isinstance(node.value, (ast.List, ast.Tuple)):
                return {
                    elt.value
                    for elt in node.value.elts
                    if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                }
        return None

    def _parse_function(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        parent: str | None,
    ) -> ParsedSymbol:
        """Parse a function or async function definition.

        Args:
            node: The AST function node.
            parent: Name of the parent class, if any.

        Returns:
            ParsedSymbol representing the function.
        """
        return ParsedSymbol(
            name=node.name,
            symbol_type=SymbolType.METHOD if parent is not None else SymbolType.FUNCTION,
            start_line=self._first_line(node),
            end_line=node.end_lineno or node.lineno,
            docstring=ast.get_docstring(node),
            signature=self._build_signature(node),
            parent=parent,
        )

    def _parse_class(self, node: ast.ClassDef) -> list[ParsedSymbol]:
        """Parse a class definition and its methods.

        Args:
            node: The AST class node.

        Returns:
            List of symbols (class + methods).
        """
        symbols = [
            ParsedSymbol(
                name=node.name,
                symbol_type=SymbolType.CLASS,
                start_line=self._first_line(node),
                end_line=node.end_lineno or node.lineno,
                docstring=ast.get_docstring(node),
                signature=self._build_class_signature(node),
            )
        ]

        for item in node.body:
            if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                symbols.append(self._parse_function(item, parent=node.name))

        return symbols

    def _first_line(self, node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef) -> int:
        """First line of a definition, including its decorators."""
        lines = [node.lineno] + [dec.lineno for dec in node.decorator_list]
        return min(lines)

    def _parse_assignment(self, node: ast.Assign) -> list[ParsedSymbol]:
        """Parse a module-level assignment.

        Args:
            node: The AST assignment node.

        Returns:
            List of variable/constant symbols.
        """
        symbols = []

        for target in node.targets:
            if isinstance(target, ast.Name) and target.id != "__all__":
                name = target.id
                # Convention: UPPER_CASE names are constants
                symbol_type = SymbolType.CONSTANT if name.isupper() else SymbolType.VARIABLE
                symbols.append(
                    ParsedSymbol(
                        name=name,
                        symbol_type=symbol_type,
                        start_line=node.lineno,
                        end_line=node.end_lineno or node.lineno,
                    )
                )

        return symbols

    def _get_attribute_name(self, node: ast.Attribute) -> str:
        """Get the full dotted name from an Attribute node.

        Args:
            node: The AST attribute node.

        Returns:
            Dotted name string (e.g., 'self.scanner.scan').
        """
        parts = []
        current: ast.expr = node

        while isinstance(current, ast.Attribute):
            parts.append(current.attr)
            current = current.value

        if isinstance(current, ast.Name):
            parts.append(current.id)

        return ".".join(reversed(parts))

    def _build_signature(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> str:
        """Build a human-readable function signature.

        Args:
            node: The AST function node.

        Returns:
            Function signature string.
        """
        prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
        sig = f"{prefix} {node.name}({ast.unparse(node.args)})"
        if node.returns:
            sig += f" -> {ast.unparse(node.returns)}"
        return sig

    def _build_class_signature(self, node: ast.ClassDef) -> str:
        """Build a class signature including base classes.

        Args:
            node: The AST class node.

        Returns:
            Class signature string.
        """
        bases = [ast.unparse(base) for base in node.bases]
        keywords = [f"{kw.arg}={ast.unparse(kw.value)}" for kw in node.keywords]

        all_parts = bases + keywords
        if all_parts:
            return f"class {node.name}({', '.join(all_parts)})"
        return f"class {node.name}"

    def _extract_inheritance(self, node: ast.ClassDef) -> list[Reference]:
        """Extract inheritance relationships from a class definition.

        Args:
            node: The ClassDef AST node.

        Returns:
            List of Reference objects for inheritance.
        """
        references = []

        for base in node.bases:
            if isinstance(base, ast.Name):
                target = base.id
            elif isinstance(base, ast.Attribute):
                target = self._get_attribute_name(base)
            else:
                continue
            references.append(
                Reference(
                    source=node.name,
                    target=target,
                    reference_type=ReferenceType.INHERITS,
                    line=node.lineno,
                )
            )

        return references

    def _extract_calls(self, node: ast.AST, current_scope: str) -> list[Reference]:
        """Extract function/method calls from an AST node.

        Args:
            node: The AST node to analyze.
            current_scope: Qualified name of the enclosing function or method.

        Returns:
            List of Reference objects for calls found.
        """
        references = []

        for child in ast.walk(node):
            if not isinstance(child, ast.Call):
                continue
            func = child.func
            if isinstance(func, ast.Name):
                target = func.id
            elif isinstance(func, ast.Attribute):
                target = self._get_attribute_name(func)
            else:
                continue
            last = target.rsplit(".", 1)[-1]
            # Convention: CapitalCase names are likely classes (instantiation)
            ref_type = (
                ReferenceType.INSTANTIATES if last[:1].isupper() else ReferenceType.CALLS
            )
            references.append(
                Reference(
                    source=current_scope,
                    target=target,
                    reference_type=ref_type,
                    line=child.lineno,
                )
            )

        return references
