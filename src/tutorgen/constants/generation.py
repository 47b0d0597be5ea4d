"""Tutorial generation constants.

Names and formats that make up the output file-set contract: abstraction
categories, chapter section headers, and file naming.
"""

# =============================================================================
# Abstraction Categories
# =============================================================================
# Each abstraction belongs to exactly one category. The architecture diagram
# draws one subgraph per category.

VALID_CATEGORIES = frozenset(
    {
        "Business Logic",
        "Data Layer",
        "Interface",
        "Infrastructure",
        "Configuration",
        "Utilities",
    }
)
DEFAULT_CATEGORY = "Utilities"

# =============================================================================
# Output Files
# =============================================================================
# Chapters are numbered from 1 with a two-digit zero-padded index.

INDEX_FILENAME = "index.md"
CODE_EXAMPLES_FILENAME = "code_examples.md"
CHAPTER_FILENAME_FORMAT = "chapter_{:02d}.md"

# Marker written into every section of a placeholder chapter.
INCOMPLETE_MARKER = "> **Generation incomplete.**"

# =============================================================================
# Diagrams
# =============================================================================
# Hex digits of the SHA-1 of an abstraction id used as its mermaid node id.

NODE_ID_HASH_LENGTH = 10
MAX_SEQUENCE_MESSAGES = 24
