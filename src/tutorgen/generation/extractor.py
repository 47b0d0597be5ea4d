"""Concept extraction: from scanned files to a bounded set of abstractions.

Extraction is hybrid. A static pass parses every documentable file and turns
each module into a candidate component. When a synthesizer is available, a
generative pass asks it to group candidates into the abstractions a newcomer
must learn; every draft it returns has to map back to at least one candidate,
so every abstraction stays tied to real source files.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from tutorgen.config import ConfigError, load_settings
from tutorgen.constants.files import NON_CODE_LANGUAGES, TEST_DIRECTORIES, TEST_FILE_PATTERNS
from tutorgen.constants.generation import DEFAULT_CATEGORY, VALID_CATEGORIES
from tutorgen.errors import ExtractionError
from tutorgen.generation.prompts import SYSTEM_PROMPT, get_extraction_prompt
from tutorgen.graph.models import Abstraction, SourceLocation, normalize_name, slugify
from tutorgen.llm.client import LLMAuthenticationError, LLMError
from tutorgen.llm.synthesizer import ContentSynthesizer, RetryPolicy, call_with_retry
from tutorgen.parsing.models import ParsedFile, SymbolType
from tutorgen.parsing.registry import ParserRegistry
from tutorgen.repo.models import SourceFile

logger = logging.getLogger(__name__)

# Path and name keywords -> category, checked in order
CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Configuration", ("config", "settings", "options", "env", "constants")),
    ("Interface", ("cli", "api", "route", "view", "handler", "command", "server", "ui")),
    ("Data Layer", ("model", "schema", "db", "store", "repository", "storage", "cache")),
    ("Infrastructure", ("client", "http", "io", "queue", "worker", "logging", "emit", "scan")),
    ("Utilities", ("util", "helper", "common", "misc", "tools")),
]

YAML_BLOCK_PATTERNS = (
    re.compile(r"```ya?ml\s*\n(.*?)\n```", re.DOTALL),
    re.compile(r"```\s*\n(.*?)\n```", re.DOTALL),
)
LEADING_INDEX = re.compile(r"^\s*(\d+)\s*(?:#.*)?$")


class DraftParseError(ValueError):
    """Raised when a generative response cannot be turned into drafts."""

    pass


def humanize(name: str) -> str:
    """Display name for a class or file stem ("file_filter" -> "File Filter")."""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name)
    words = [w for w in re.split(r"[^A-Za-z0-9]+", spaced) if w]
    return " ".join(w if w.isupper() else w[:1].upper() + w[1:] for w in words) or name


def is_test_path(path: str) -> bool:
    """True for files that belong to a test suite."""
    parts = path.split("/")
    if any(part in TEST_DIRECTORIES for part in parts[:-1]):
        return True
    return any(fnmatch.fnmatch(parts[-1], pattern) for pattern in TEST_FILE_PATTERNS)


def guess_category(path: str, name: str) -> str:
    """Guess an abstraction category from its path and name."""
    words = set(re.split(r"[^a-z0-9]+", f"{path} {humanize(name)}".lower()))
    for category, keywords in CATEGORY_KEYWORDS:
        if any(word.startswith(keyword) for word in words for keyword in keywords):
            return category
    return "Business Logic"


def coerce_category(value: Any) -> str:
    """Match a free-form category to a valid one, else DEFAULT_CATEGORY."""
    text = str(value or "").strip()
    for category in VALID_CATEGORIES:
        if category.lower() == text.lower():
            return category
    key = normalize_name(text)
    for category in VALID_CATEGORIES:
        if normalize_name(category) == key:
            return category
    return DEFAULT_CATEGORY


class AbstractionDraft(BaseModel):
    """One abstraction as returned by the generative backend."""

    name: str = Field(..., min_length=1)
    summary: str = ""
    category: str = DEFAULT_CATEGORY
    candidates: list[int | str] = Field(default_factory=list)
    interactions: list[str] = Field(default_factory=list)

    @field_validator("name", "summary", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        return " ".join(str(value or "").split())

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> str:
        return coerce_category(value)

    @field_validator("candidates", "interactions", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> list:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            return [value]
        return list(value)


@dataclass
class Candidate:
    """A statically derived component: one module, or several merged by name."""

    name: str
    summary: str
    category: str
    locations: list[SourceLocation] = field(default_factory=list)
    symbols: list[str] = field(default_factory=list)
    weight: int = 0

    @property
    def files(self) -> list[str]:
        return list(dict.fromkeys(loc.path for loc in self.locations))

    def merge(self, other: "Candidate") -> None:
        for loc in other.locations:
            if loc not in self.locations:
                self.locations.append(loc)
        for symbol in other.symbols:
            if symbol not in self.symbols:
                self.symbols.append(symbol)
        if len(other.summary) > len(self.summary):
            self.summary = other.summary
        self.weight += other.weight


def _first_sentence(text: str | None) -> str:
    if not text:
        return ""
    paragraph = text.strip().split("\n\n", 1)[0]
    return " ".join(paragraph.split())


class ConceptExtractor:
    """Identifies the core abstractions of a scanned repository."""

    def __init__(
        self,
        synthesizer: ContentSynthesizer | None = None,
        max_abstractions: int | None = None,
        retry_policy: RetryPolicy | None = None,
        context_limit: int | None = None,
        tokens_per_char: float | None = None,
        temperature: float | None = None,
        registry: ParserRegistry | None = None,
    ):
        """Initialize the extractor.

        Args:
            synthesizer: Generative backend. None runs the static pass only.
            max_abstractions: Upper bound on returned abstractions.
            retry_policy: Attempts and backoff for the generative call.
            context_limit: Token budget for source excerpts in the prompt.
            tokens_per_char: Token estimate per character of source.
            temperature: Sampling temperature for the generative call.
            registry: Parser registry for the static pass.
        """
        generation = None
        try:
            generation = load_settings().generation
        except (ValueError, OSError, ConfigError):
            pass

        self.synthesizer = synthesizer
        self.max_abstractions = max_abstractions or (
            generation.max_abstractions if generation else 10
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=generation.max_attempts if generation else 3,
            backoff_seconds=generation.retry_backoff_seconds if generation else 1.0,
        )
        self.context_limit = context_limit or (generation.context_limit if generation else 60_000)
        self.tokens_per_char = tokens_per_char or (
            generation.tokens_per_char if generation else 0.25
        )
        if temperature is None:
            temperature = generation.temperature if generation else 0.0
        self.temperature = temperature
        self.registry = registry or ParserRegistry()

    @property
    def reproducible(self) -> bool:
        """Whether generative output can be expected to repeat."""
        if self.synthesizer is None:
            return True
        return self.synthesizer.deterministic or self.temperature == 0.0

    async def extract(
        self,
        files: list[SourceFile],
        parsed: dict[str, ParsedFile] | None = None,
        project_name: str = "project",
    ) -> list[Abstraction]:
        """Extract abstractions from scanned files.

        Args:
            files: Scanned files, sorted by path.
            parsed: Already parsed files keyed by path, if available.
            project_name: Name used in the prompt.

        Returns:
            At most max_abstractions abstractions, in first-seen order.

        Raises:
            ExtractionError: If there is nothing to document, or the backend
                keeps failing.
        """
        candidates = self.static_candidates(files, parsed)
        if not candidates:
            raise ExtractionError("No documentable source files found")
        logger.info(f"Static pass found {len(candidates)} candidate components")

        if self.synthesizer is None:
            return self._from_candidates(candidates)

        prompt = get_extraction_prompt(
            project_name=project_name,
            candidate_listing=self._candidate_listing(candidates),
            file_context=self._file_context(candidates, files),
            max_abstractions=self.max_abstractions,
        )

        async def attempt() -> list[Abstraction]:
            response = await self.synthesizer.generate(
                prompt, system_prompt=SYSTEM_PROMPT, temperature=self.temperature
            )
            return self._from_response(response, candidates)

        try:
            return await call_with_retry(
                attempt,
                self.retry_policy,
                retry_on=(LLMError, DraftParseError),
                give_up_on=(LLMAuthenticationError,),
                description="Concept extraction",
            )
        except DraftParseError as e:
            logger.warning(f"Falling back to static candidates: {e}")
            return self._from_candidates(candidates)
        except LLMError as e:
            raise ExtractionError(f"Concept extraction failed: {e}") from e

    # ------------------------------------------------------------------
    # Static pass
    # ------------------------------------------------------------------

    def static_candidates(
        self,
        files: list[SourceFile],
        parsed: dict[str, ParsedFile] | None = None,
    ) -> list[Candidate]:
        """One candidate per documentable module, merged by normalized name."""
        parsed = parsed or {}
        by_key: dict[str, Candidate] = {}
        for source in files:
            if source.language in NON_CODE_LANGUAGES or is_test_path(source.path):
                continue
            parsed_file = parsed.get(source.path) or self.registry.parse_source(source)
            candidate = self._candidate_for(source, parsed_file)
            if candidate is None:
                continue
            key = normalize_name(candidate.name)
            if key in by_key:
                by_key[key].merge(candidate)
            else:
                by_key[key] = candidate
        return list(by_key.values())

    def _candidate_for(self, source: SourceFile, parsed: ParsedFile) -> Candidate | None:
        public = parsed.public_symbols
        if not public:
            return None

        primary = next((s for s in public if s.symbol_type is SymbolType.CLASS), None)
        if primary is not None and source.stem not in ("__init__", "index", "main", "mod"):
            name = humanize(primary.name)
        elif source.stem in ("__init__", "index", "mod"):
            parent = source.path.rsplit("/", 2)
            name = humanize(parent[-2] if len(parent) > 1 else source.stem)
        else:
            name = humanize(source.stem)

        summary = _first_sentence(primary.docstring if primary else None)
        summary = summary or _first_sentence(parsed.docstring)
        if not summary:
            names = ", ".join(s.name for s in public[:3])
            summary = f"Defines {names} in {source.path}."

        return Candidate(
            name=name,
            summary=summary,
            category=guess_category(source.path, name),
            locations=[SourceLocation(source.path, 1, max(source.line_count, 1))],
            symbols=[s.name for s in public],
            weight=len(public),
        )

    def _from_candidates(self, candidates: list[Candidate]) -> list[Abstraction]:
        selected = candidates
        if len(candidates) > self.max_abstractions:
            ranked = sorted(range(len(candidates)), key=lambda i: (-candidates[i].weight, i))
            keep = set(ranked[: self.max_abstractions])
            selected = [c for i, c in enumerate(candidates) if i in keep]
        abstractions = [
            Abstraction(
                id=slugify(c.name),
                name=c.name,
                summary=c.summary,
                category=c.category,
                locations=tuple(c.locations),
                symbols=tuple(c.symbols),
                reproducible=True,
            )
            for c in selected
        ]
        return _unique_ids(abstractions)

    # ------------------------------------------------------------------
    # Generative pass
    # ------------------------------------------------------------------

    def _candidate_listing(self, candidates: list[Candidate]) -> str:
        return "\n".join(
            f"- {i} # {c.name} ({', '.join(c.files)})" for i, c in enumerate(candidates)
        )

    def _file_context(self, candidates: list[Candidate], files: list[SourceFile]) -> str:
        """Source excerpts of candidate files, trimmed to the context budget."""
        contents = {f.path: f.content for f in files}
        budget = int(self.context_limit / self.tokens_per_char)
        parts: list[str] = []
        for candidate in candidates:
            for path in candidate.files:
                if budget <= 0:
                    break
                header = f"--- File: {path} ---\n"
                body = contents.get(path, "")[: max(budget - len(header), 0)]
                parts.append(header + body)
                budget -= len(header) + len(body)
        return "\n\n".join(parts)

    def parse_drafts(self, response: str) -> list[AbstractionDraft]:
        """Parse a generative response into validated drafts.

        Raises:
            DraftParseError: If the response holds no usable YAML list.
        """
        raw = _extract_yaml_block(response)
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise DraftParseError(f"Response is not valid YAML: {e}") from e
        if isinstance(data, dict):
            data = data.get("abstractions")
        if not isinstance(data, list):
            raise DraftParseError("Response is not a YAML list of abstractions")

        drafts = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                drafts.append(AbstractionDraft.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid abstraction draft: {e.errors()[0]['msg']}")
        if not drafts:
            raise DraftParseError("Response contains no valid abstraction drafts")
        return drafts

    def _resolve(self, reference: int | str, candidates: list[Candidate]) -> int | None:
        if isinstance(reference, int):
            return reference if 0 <= reference < len(candidates) else None
        match = LEADING_INDEX.match(reference)
        if match:
            index = int(match.group(1))
            return index if index < len(candidates) else None
        key = normalize_name(reference)
        for i, candidate in enumerate(candidates):
            if normalize_name(candidate.name) == key or reference in candidate.files:
                return i
        return None

    def _from_response(self, response: str, candidates: list[Candidate]) -> list[Abstraction]:
        drafts = self.parse_drafts(response)
        reproducible = self.reproducible
        merged: dict[str, tuple[AbstractionDraft, Candidate]] = {}

        for draft in drafts:
            indices = [self._resolve(ref, candidates) for ref in draft.candidates]
            indices = [i for i in dict.fromkeys(indices) if i is not None]
            if not indices:
                named = self._resolve(draft.name, candidates)
                indices = [named] if named is not None else []
            if not indices:
                logger.warning(f"Dropping abstraction '{draft.name}': maps to no source file")
                continue

            combined = Candidate(
                name=draft.name,
                summary=draft.summary,
                category=draft.category,
            )
            for i in indices:
                combined.locations.extend(
                    loc for loc in candidates[i].locations if loc not in combined.locations
                )
                combined.symbols.extend(
                    s for s in candidates[i].symbols if s not in combined.symbols
                )
            if not combined.summary:
                combined.summary = candidates[indices[0]].summary

            key = normalize_name(draft.name)
            if key in merged:
                existing_draft, existing = merged[key]
                existing.merge(combined)
                interactions = list(
                    dict.fromkeys([*existing_draft.interactions, *draft.interactions])
                )
                updated = existing_draft.model_copy(update={"interactions": interactions})
                merged[key] = (updated, existing)
            else:
                merged[key] = (draft, combined)

        if not merged:
            raise DraftParseError("No abstraction draft maps to a scanned file")

        abstractions = [
            Abstraction(
                id=slugify(candidate.name),
                name=candidate.name,
                summary=candidate.summary,
                category=candidate.category,
                locations=tuple(candidate.locations),
                symbols=tuple(candidate.symbols),
                interactions=tuple(draft.interactions),
                reproducible=reproducible,
            )
            for draft, candidate in merged.values()
        ][: self.max_abstractions]
        if not reproducible:
            logger.warning("Abstractions come from a non-deterministic backend call")
        logger.info(f"Extracted {len(abstractions)} abstractions")
        return _unique_ids(abstractions)


def _extract_yaml_block(text: str) -> str:
    """YAML inside a fenced block if present, else the text itself."""
    text = text.strip()
    for pattern in YAML_BLOCK_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return text


def _unique_ids(abstractions: list[Abstraction]) -> list[Abstraction]:
    seen: dict[str, int] = {}
    unique = []
    for abstraction in abstractions:
        count = seen.get(abstraction.id, 0)
        seen[abstraction.id] = count + 1
        if count:
            abstraction = replace(abstraction, id=f"{abstraction.id}-{count + 1}")
        unique.append(abstraction)
    return unique
