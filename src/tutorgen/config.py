# src/tutorgen/config.py
"""Configuration system for tutorgen.

This module handles loading settings from environment variables and INI files,
providing sensible defaults, and computing derived paths for the tutorial
output tree.
"""

from configparser import ConfigParser
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import os


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# Schema: section -> key -> (type, default, min, max, description)
CONFIG_SCHEMA: dict[str, dict[str, tuple[type, Any, Any, Any, str]]] = {
    "generation": {
        "temperature": (float, 0.0, 0.0, 1.0, "LLM temperature for chapter synthesis"),
        "tokens_per_char": (float, 0.25, 0.1, 1.0, "Token estimation multiplier"),
        "context_limit": (int, 60_000, 1000, None, "Max tokens sent to LLM per prompt"),
        "parallel_limit": (int, 8, 1, 64, "Concurrent LLM calls"),
        "max_attempts": (int, 3, 1, 10, "Attempts per generative call before giving up"),
        "retry_backoff_seconds": (float, 1.0, 0.0, 60.0, "Initial retry backoff"),
        "max_abstractions": (int, 10, 1, 50, "Upper bound on extracted abstractions"),
        "max_example_lines": (int, 15, 3, 200, "Longest cited code example"),
        "max_examples_per_chapter": (int, 3, 0, 20, "Cited code examples per chapter"),
        "on_chapter_failure": (str, "placeholder", None, None, "placeholder or fail"),
        "tie_break": (str, "declaration", None, None, "declaration or alphabetical"),
    },
    "files": {
        "max_file_size_kb": (int, 100, 1, 10000, "File size limit in KB"),
        "binary_check_bytes": (int, 1024, 64, 8192, "Bytes checked for binary detection"),
        "minified_line_length": (int, 500, 100, 5000, "Threshold for minified file detection"),
        "scan_workers": (int, 8, 1, 64, "Threads reading files during a scan"),
    },
    "llm": {
        "max_tokens": (int, 4096, 256, 32768, "Max response tokens"),
        "default_temperature": (float, 0.7, 0.0, 2.0, "Default LLM temperature"),
    },
    "paths": {
        "output_dir": (str, "tutorials", None, None, "Root directory for job outputs"),
        "ignore_file": (str, ".tutorignore", None, None, "Ignore file name"),
        "logs_dir": (str, ".tutorgen-logs", None, None, "Logs directory name"),
    },
}

# Allowed values for enumerated string settings
CHOICES: dict[tuple[str, str], frozenset[str]] = {
    ("generation", "on_chapter_failure"): frozenset({"placeholder", "fail"}),
    ("generation", "tie_break"): frozenset({"declaration", "alphabetical"}),
}


@dataclass(frozen=True)
class GenerationConfig:
    """Generation-related configuration."""

    temperature: float
    tokens_per_char: float
    context_limit: int
    parallel_limit: int
    max_attempts: int
    retry_backoff_seconds: float
    max_abstractions: int
    max_example_lines: int
    max_examples_per_chapter: int
    on_chapter_failure: str
    tie_break: str


@dataclass(frozen=True)
class FilesConfig:
    """File processing configuration."""

    max_file_size_kb: int
    binary_check_bytes: int
    minified_line_length: int
    scan_workers: int


@dataclass(frozen=True)
class LLMConfig:
    """LLM client configuration."""

    max_tokens: int
    default_temperature: float


@dataclass(frozen=True)
class PathsConfig:
    """Path names configuration."""

    output_dir: str
    ignore_file: str
    logs_dir: str


def _defaults(section: str) -> dict[str, Any]:
    return {key: default for key, (_, default, _, _, _) in CONFIG_SCHEMA[section].items()}


def _load_section(
    parser: ConfigParser, section: str, schema: dict[str, tuple[type, Any, Any, Any, str]]
) -> dict[str, Any]:
    """Load and validate a configuration section.

    Args:
        parser: ConfigParser instance with loaded config
        section: Section name to load
        schema: Schema definition for the section

    Returns:
        Dictionary of validated configuration values

    Raises:
        ConfigError: If validation fails
    """
    result = {}

    for key, (typ, default, min_val, max_val, _) in schema.items():
        if parser.has_option(section, key):
            raw_value = parser.get(section, key)
            value: bool | int | float | str
            try:
                if typ is bool:
                    value = raw_value.lower() in ("true", "1", "yes", "on")
                elif typ is int:
                    value = int(raw_value)
                elif typ is float:
                    value = float(raw_value)
                else:
                    value = raw_value.strip()
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for [{section}].{key}: {raw_value!r} (expected {typ.__name__})"
                ) from e
        else:
            value = default

        if typ in (int, float) and value is not None:
            if min_val is not None and value < min_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but minimum is {min_val}"
                )
            if max_val is not None and value > max_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but maximum is {max_val}"
                )

        choices = CHOICES.get((section, key))
        if choices is not None and value not in choices:
            raise ConfigError(
                f"Value for [{section}].{key} is {value!r}, expected one of {sorted(choices)}"
            )

        result[key] = value

    return result


def _load_config(config_path: Optional[Path] = None) -> "Config":
    """Load configuration from an INI file (internal use only).

    Args:
        config_path: Path to config file. If None, uses defaults from schema.

    Returns:
        Config object with all sections populated.

    Raises:
        ConfigError: If validation fails
    """
    parser = ConfigParser()

    if config_path and config_path.exists():
        parser.read(config_path)

    return Config(
        generation=GenerationConfig(
            **_load_section(parser, "generation", CONFIG_SCHEMA["generation"])
        ),
        files=FilesConfig(**_load_section(parser, "files", CONFIG_SCHEMA["files"])),
        llm=LLMConfig(**_load_section(parser, "llm", CONFIG_SCHEMA["llm"])),
        paths=PathsConfig(**_load_section(parser, "paths", CONFIG_SCHEMA["paths"])),
    )


@dataclass(frozen=True)
class Config:
    """Complete application configuration."""

    base_path: Path = Path(".")
    active_provider: str = "ollama"
    active_model: str = "llama3"
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    ollama_endpoint: str = "http://localhost:11434"

    # Section configs, defaults filled in by __post_init__
    generation: GenerationConfig = None  # type: ignore[assignment]
    files: FilesConfig = None  # type: ignore[assignment]
    llm: LLMConfig = None  # type: ignore[assignment]
    paths: PathsConfig = None  # type: ignore[assignment]

    def __post_init__(self):
        """Initialize section configs with defaults if not provided."""
        if self.generation is None:
            object.__setattr__(self, "generation", GenerationConfig(**_defaults("generation")))
        if self.files is None:
            object.__setattr__(self, "files", FilesConfig(**_defaults("files")))
        if self.llm is None:
            object.__setattr__(self, "llm", LLMConfig(**_defaults("llm")))
        if self.paths is None:
            object.__setattr__(self, "paths", PathsConfig(**_defaults("paths")))

    @property
    def output_path(self) -> Path:
        """Directory that receives one subdirectory per tutorial job."""
        output_dir = Path(self.paths.output_dir)
        if output_dir.is_absolute():
            return output_dir
        return self.base_path / output_dir

    @property
    def llm_log_path(self) -> Path:
        """Path to LLM query log file."""
        return self.base_path / self.paths.logs_dir / "llm-queries.jsonl"

    @property
    def llm_api_key(self) -> Optional[str]:
        """API key for the active LLM provider."""
        provider_keys = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
        }
        return provider_keys.get(self.active_provider)

    @property
    def llm_endpoint(self) -> Optional[str]:
        """Endpoint for LLM provider (mainly for Ollama)."""
        if self.active_provider == "ollama":
            return self.ollama_endpoint
        return None


PROVIDER_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20241022",
    "google": "gemini-1.5-pro",
    "ollama": "llama3",
}


def _detect_provider_from_keys() -> tuple[str, str]:
    """Auto-detect provider from available API keys.

    Returns:
        Tuple of (provider, model) based on available keys.
        Falls back to ollama if no keys are found.
    """
    if os.getenv("OPENAI_API_KEY"):
        return ("openai", PROVIDER_DEFAULT_MODELS["openai"])
    if os.getenv("ANTHROPIC_API_KEY"):
        return ("anthropic", PROVIDER_DEFAULT_MODELS["anthropic"])
    if os.getenv("GOOGLE_API_KEY"):
        return ("google", PROVIDER_DEFAULT_MODELS["google"])
    return ("ollama", PROVIDER_DEFAULT_MODELS["ollama"])


@lru_cache(maxsize=4)
def load_settings(config_path: Optional[Path] = None) -> Config:
    """Load settings from environment variables and config file.

    Settings are cached; use load_settings.cache_clear() to reload.

    Args:
        config_path: INI file to read. Defaults to TUTORGEN_CONFIG, then
            ./tutorgen.ini when present.

    Returns:
        Config object populated from environment variables and config file.

    Raises:
        ConfigError: If the config file holds invalid values.
    """
    if config_path is None:
        env_config = os.getenv("TUTORGEN_CONFIG")
        config_path = Path(env_config) if env_config else Path("tutorgen.ini")
    try:
        config_exists = config_path.exists()
    except PermissionError:
        config_exists = False
    base_config = _load_config(config_path if config_exists else None)

    active_provider = os.getenv("ACTIVE_PROVIDER")
    active_model = os.getenv("ACTIVE_MODEL")

    if not active_provider:
        detected_provider, detected_model = _detect_provider_from_keys()
        active_provider = detected_provider
        if not active_model:
            active_model = detected_model
    elif not active_model:
        active_model = PROVIDER_DEFAULT_MODELS.get(active_provider, "llama3")

    generation = base_config.generation
    parallel_limit_env = os.getenv("PARALLEL_LIMIT")
    if parallel_limit_env:
        try:
            parallel_limit = int(parallel_limit_env)
        except ValueError as e:
            raise ConfigError(f"Invalid PARALLEL_LIMIT: {parallel_limit_env!r}") from e
        if parallel_limit < 1:
            raise ConfigError(f"PARALLEL_LIMIT must be positive, got {parallel_limit}")
        generation = GenerationConfig(**{**generation.__dict__, "parallel_limit": parallel_limit})

    paths = base_config.paths
    output_dir_env = os.getenv("TUTORGEN_OUTPUT_DIR")
    if output_dir_env:
        paths = PathsConfig(**{**paths.__dict__, "output_dir": output_dir_env})

    return Config(
        base_path=Path.cwd(),
        active_provider=active_provider,
        active_model=active_model,
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        google_api_key=os.getenv("GOOGLE_API_KEY"),
        ollama_endpoint=os.getenv("OLLAMA_ENDPOINT", "http://localhost:11434"),
        generation=generation,
        files=base_config.files,
        llm=base_config.llm,
        paths=paths,
    )
