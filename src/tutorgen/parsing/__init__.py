"""Code parsing utilities."""

from tutorgen.parsing.base import BaseParser
from tutorgen.parsing.fallback_parser import FallbackParser
from tutorgen.parsing.flow import ControlFlow, FlowStep, StepKind, trace_flow
from tutorgen.parsing.models import (
    ParsedFile,
    ParsedSymbol,
    ParseResult,
    Reference,
    ReferenceType,
    SymbolType,
)
from tutorgen.parsing.python_parser import PythonParser
from tutorgen.parsing.registry import ParserRegistry

__all__ = [
    "BaseParser",
    "ControlFlow",
    "FallbackParser",
    "FlowStep",
    "ParsedFile",
    "ParsedSymbol",
    "ParseResult",
    "ParserRegistry",
    "PythonParser",
    "Reference",
    "ReferenceType",
    "StepKind",
    "SymbolType",
    "trace_flow",
]
