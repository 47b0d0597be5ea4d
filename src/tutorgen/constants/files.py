"""File scanning and language detection constants.

These settings control how scanned files are tagged with a language and which
of them are treated as tests rather than documentable source.
"""

# =============================================================================
# Language Tags
# =============================================================================
# Every scanned file carries a language tag. The tag feeds parser selection,
# code fence languages in chapters, and the code examples index. Extensions
# missing from this table are tagged "text".

EXTENSION_LANGUAGES = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "csharp",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".hpp": "cpp",
    ".kt": "kotlin",
    ".swift": "swift",
    ".scala": "scala",
    ".lua": "lua",
    ".sh": "shell",
    ".bash": "shell",
    ".sql": "sql",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".vue": "vue",
    ".md": "markdown",
    ".rst": "rst",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".ini": "ini",
    ".cfg": "ini",
}

# Languages whose files are documentation or data rather than code. They are
# scanned (the overview uses README text) but never become abstractions.
NON_CODE_LANGUAGES = frozenset(
    {"markdown", "rst", "json", "yaml", "toml", "ini", "text", "html", "css", "scss"}
)

# =============================================================================
# Test Detection
# =============================================================================
# Test files are left out of abstraction extraction so chapters describe the
# product code, not its test suite.

TEST_DIRECTORIES = frozenset({"tests", "test", "__tests__", "spec", "specs"})
TEST_FILE_PATTERNS = ("test_*", "*_test.*", "*.test.*", "*.spec.*", "conftest.py")
