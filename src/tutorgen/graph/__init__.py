"""Abstraction graph construction and chapter ordering."""

from tutorgen.graph.models import (
    Abstraction,
    AbstractionGraph,
    Relationship,
    SourceLocation,
    normalize_name,
    slugify,
)
from tutorgen.graph.builder import RelationshipBuilder, label_family
from tutorgen.graph.sequencer import ChapterSequencer, SequenceResult

__all__ = [
    # Models
    "Abstraction",
    "AbstractionGraph",
    "Relationship",
    "SourceLocation",
    "normalize_name",
    "slugify",
    # Builder
    "RelationshipBuilder",
    "label_family",
    # Sequencer
    "ChapterSequencer",
    "SequenceResult",
]
