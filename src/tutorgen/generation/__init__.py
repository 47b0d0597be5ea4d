# src/tutorgen/generation/__init__.py
"""Tutorial generation pipeline module."""

from tutorgen.generation.chapter import ChapterGenerator, static_sections
from tutorgen.generation.emitter import (
    ArtifactEmitter,
    prepare_staging_directory,
    promote_staging_to_production,
    staging_path_for,
)
from tutorgen.generation.extractor import (
    AbstractionDraft,
    Candidate,
    ConceptExtractor,
    DraftParseError,
)
from tutorgen.generation.job import JobError, JobState, TutorialJob, allowed_transitions
from tutorgen.generation.linker import CrossReferenceLinker
from tutorgen.generation.mermaid import (
    ArchitectureDiagramGenerator,
    ChapterDiagramGenerator,
    RelationshipFlowchartGenerator,
    node_id,
)
from tutorgen.generation.mermaid_validator import (
    ValidationResult,
    sanitize_label,
    validate_mermaid,
)
from tutorgen.generation.models import (
    Chapter,
    ChapterLink,
    ChapterPlan,
    ChapterRef,
    ChapterState,
    CodeExample,
    Section,
    SectionKind,
    chapter_filename,
)
from tutorgen.generation.orchestrator import (
    JobProgress,
    ProgressCallback,
    TutorialOrchestrator,
)
from tutorgen.generation.overview import OverviewGenerator
from tutorgen.generation.prompts import (
    EXTRACTION_TEMPLATE,
    OVERVIEW_TEMPLATE,
    SECTION_TEMPLATE,
    SYSTEM_PROMPT,
    PromptTemplate,
    get_extraction_prompt,
    get_overview_prompt,
    get_section_prompt,
)
from tutorgen.generation.snippets import (
    GroundedBlock,
    extract_examples,
    ground_code_blocks,
    locate_snippet,
)

__all__ = [
    # Chapter Generator
    "ChapterGenerator",
    "static_sections",
    # Emitter
    "ArtifactEmitter",
    "prepare_staging_directory",
    "promote_staging_to_production",
    "staging_path_for",
    # Concept Extraction
    "AbstractionDraft",
    "Candidate",
    "ConceptExtractor",
    "DraftParseError",
    # Job
    "JobError",
    "JobState",
    "TutorialJob",
    "allowed_transitions",
    # Linker
    "CrossReferenceLinker",
    # Diagrams
    "ArchitectureDiagramGenerator",
    "ChapterDiagramGenerator",
    "RelationshipFlowchartGenerator",
    "ValidationResult",
    "node_id",
    "sanitize_label",
    "validate_mermaid",
    # Models
    "Chapter",
    "ChapterLink",
    "ChapterPlan",
    "ChapterRef",
    "ChapterState",
    "CodeExample",
    "Section",
    "SectionKind",
    "chapter_filename",
    # Orchestrator
    "JobProgress",
    "ProgressCallback",
    "TutorialOrchestrator",
    # Overview Generator
    "OverviewGenerator",
    # Prompts
    "EXTRACTION_TEMPLATE",
    "OVERVIEW_TEMPLATE",
    "SECTION_TEMPLATE",
    "SYSTEM_PROMPT",
    "PromptTemplate",
    "get_extraction_prompt",
    "get_overview_prompt",
    "get_section_prompt",
    # Snippets
    "GroundedBlock",
    "extract_examples",
    "ground_code_blocks",
    "locate_snippet",
]
