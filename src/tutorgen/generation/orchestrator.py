# src/tutorgen/generation/orchestrator.py
"""Tutorial orchestrator.

This module provides the TutorialOrchestrator class that drives a tutorial
job through its phases:

1. Scanning - Read the repository into SourceFiles (worker thread)
2. Extracting - Identify abstractions and infer their relationships
3. Sequencing - Order chapters and freeze one plan per chapter
4. Generating - Draft chapters and the overview concurrently
5. Linking - Resolve chapter references and render the markdown files
6. Emitting - Publish the file set atomically

No files are published unless the job reaches EMITTED.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

from tutorgen.config import Config, ConfigError, load_settings
from tutorgen.errors import GenerationError, JobCancelled, TutorialError
from tutorgen.generation.chapter import ChapterGenerator
from tutorgen.generation.emitter import ArtifactEmitter
from tutorgen.generation.extractor import ConceptExtractor
from tutorgen.generation.job import JobState, TutorialJob
from tutorgen.generation.linker import CrossReferenceLinker
from tutorgen.generation.mermaid import (
    ArchitectureDiagramGenerator,
    ChapterDiagramGenerator,
    RelationshipFlowchartGenerator,
)
from tutorgen.generation.models import Chapter, ChapterLink, ChapterPlan, ChapterRef
from tutorgen.generation.overview import OverviewGenerator
from tutorgen.graph.builder import RelationshipBuilder
from tutorgen.graph.models import Abstraction, AbstractionGraph
from tutorgen.graph.sequencer import ChapterSequencer
from tutorgen.llm.client import LLMError
from tutorgen.llm.synthesizer import (
    BoundedSynthesizer,
    CancellationToken,
    ContentSynthesizer,
    RetryPolicy,
    first_error,
)
from tutorgen.parsing.flow import ControlFlow, trace_flow
from tutorgen.parsing.models import ParsedFile
from tutorgen.parsing.registry import ParserRegistry
from tutorgen.repo.models import RepositoryDescriptor, SourceFile
from tutorgen.repo.scanner import RepositoryScanner

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class JobProgress:
    """Progress update during a tutorial job.

    Attributes:
        job_id: Job the update belongs to.
        state: Current job state.
        step: Current step number within the state.
        total_steps: Total steps in the current state.
        message: Human-readable progress message.
        timestamp: Time of progress update.
    """

    job_id: str
    state: JobState
    step: int = 0
    total_steps: int = 0
    message: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


# Type alias for progress callback
ProgressCallback = Callable[[JobProgress], Coroutine[Any, Any, None]]


def _settings() -> Config:
    try:
        return load_settings()
    except (ValueError, OSError, ConfigError):
        return Config()


class TutorialOrchestrator:
    """Runs tutorial jobs end to end."""

    def __init__(
        self,
        synthesizer: ContentSynthesizer | None = None,
        config: Config | None = None,
        output_root: Path | None = None,
        cancel_token: CancellationToken | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            synthesizer: Generative backend, or None for a static-only run.
            config: Settings. If None, loads them, falling back to defaults.
            output_root: Directory receiving job directories. If None, uses
                the configured output path.
            cancel_token: Token that cancels the running job when fired.
        """
        self.config = config or _settings()
        self.synthesizer = synthesizer
        self.output_root = Path(output_root) if output_root else self.config.output_path
        self.cancel_token = cancel_token or CancellationToken()
        self.registry = ParserRegistry()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Cancel the running job."""
        self.cancel_token.cancel(reason)

    async def run(
        self,
        root: Path | str,
        job_id: str | None = None,
        project_name: str | None = None,
        include_patterns: tuple[str, ...] | list[str] = (),
        exclude_patterns: tuple[str, ...] | list[str] = (),
        progress_callback: ProgressCallback | None = None,
    ) -> TutorialJob:
        """Run a tutorial job.

        Args:
            root: Repository root to document.
            job_id: Job identifier. If None, a UUID4 hex is generated.
            project_name: Display name. If None, the root directory name.
            include_patterns: Globs a file must match to be scanned.
            exclude_patterns: Extra globs to skip.
            progress_callback: Async callback receiving JobProgress updates.

        Returns:
            The job in a terminal state: EMITTED, FAILED or CANCELLED.
        """
        repository = RepositoryDescriptor.from_path(Path(root), project_name)
        job = TutorialJob(repository=repository)
        if job_id:
            job.job_id = job_id
        logger.info(f"Starting tutorial job {job.job_id} for {repository.root}")

        try:
            await self._run(job, list(include_patterns), list(exclude_patterns), progress_callback)
        except BaseExceptionGroup as group:
            self._finish_with_error(job, first_error(group))
        except (TutorialError, LLMError) as e:
            self._finish_with_error(job, e)

        if job.state is not JobState.EMITTED:
            message = job.error.message if job.error else ""
            await self._progress(progress_callback, job, message=message)
        return job

    def _finish_with_error(self, job: TutorialJob, error: BaseException) -> None:
        if isinstance(error, JobCancelled):
            logger.warning(f"Job {job.job_id} cancelled: {error}")
            job.cancel(error)
            return
        if not isinstance(error, (TutorialError, LLMError)):
            raise error
        logger.error(
            f"Job {job.job_id} failed in {job.state.value}: {error.__class__.__name__}: {error}"
        )
        job.fail(error)

    async def _progress(
        self,
        callback: ProgressCallback | None,
        job: TutorialJob,
        step: int = 0,
        total_steps: int = 0,
        message: str = "",
    ) -> None:
        if callback is None:
            return
        await callback(
            JobProgress(
                job_id=job.job_id,
                state=job.state,
                step=step,
                total_steps=total_steps,
                message=message,
            )
        )

    async def _advance(
        self,
        job: TutorialJob,
        state: JobState,
        callback: ProgressCallback | None,
        message: str,
    ) -> None:
        self.cancel_token.raise_if_cancelled()
        job.transition(state)
        logger.info(f"Job {job.job_id}: {message}")
        await self._progress(callback, job, message=message)

    async def _guarded(self, operation: Awaitable[T]) -> T:
        """Await operation, abandoning it as soon as the job is cancelled."""
        work = asyncio.ensure_future(operation)
        watcher = asyncio.ensure_future(self.cancel_token.wait())
        try:
            done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
        if work in done:
            return work.result()
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        self.cancel_token.raise_if_cancelled()
        raise AssertionError("unreachable")  # pragma: no cover

    async def _run(
        self,
        job: TutorialJob,
        include_patterns: list[str],
        exclude_patterns: list[str],
        callback: ProgressCallback | None,
    ) -> None:
        generation = self.config.generation
        synthesizer = (
            BoundedSynthesizer(self.synthesizer, generation.parallel_limit, self.cancel_token)
            if self.synthesizer is not None
            else None
        )
        retry_policy = RetryPolicy(
            max_attempts=generation.max_attempts,
            backoff_seconds=generation.retry_backoff_seconds,
        )

        # Scanning
        await self._advance(job, JobState.SCANNING, callback, "Scanning repository")
        scanner = RepositoryScanner(
            job.repository.root,
            include_patterns=include_patterns,
            exclude_patterns=exclude_patterns,
            max_file_size_kb=self.config.files.max_file_size_kb,
            max_workers=self.config.files.scan_workers,
        )
        job.files = await self._guarded(asyncio.to_thread(scanner.scan))
        logger.info(f"Scanned {len(job.files)} files")

        # Extracting
        await self._advance(job, JobState.EXTRACTING, callback, "Extracting abstractions")
        parsed = await asyncio.to_thread(self.registry.parse_all, job.files)
        extractor = ConceptExtractor(
            synthesizer=synthesizer,
            max_abstractions=generation.max_abstractions,
            retry_policy=retry_policy,
            context_limit=generation.context_limit,
            tokens_per_char=generation.tokens_per_char,
            temperature=generation.temperature,
            registry=self.registry,
        )
        abstractions = await self._guarded(
            extractor.extract(job.files, parsed, job.repository.name)
        )
        if not all(a.reproducible for a in abstractions):
            job.reproducible = False
        graph = RelationshipBuilder(job.files, parsed).build(abstractions)
        job.graph = graph

        # Sequencing
        await self._advance(job, JobState.SEQUENCING, callback, "Ordering chapters")
        result = ChapterSequencer(tie_break=generation.tie_break).sequence(graph)
        job.order = result.order
        for warning in result.warnings:
            job.cycle_warnings.append(warning)
            job.warn(str(warning))
        plans = self.plan_chapters(job.repository.name, graph, result.order, job.files, parsed)
        job.architecture_diagram = ArchitectureDiagramGenerator().generate(graph)
        job.relationship_diagram = RelationshipFlowchartGenerator().generate(graph)

        # Generating
        await self._advance(job, JobState.GENERATING, callback, f"Generating {len(plans)} chapters")
        generator = ChapterGenerator(
            synthesizer=synthesizer,
            max_attempts=generation.max_attempts,
            retry_policy=retry_policy,
            max_example_lines=generation.max_example_lines,
            max_examples=generation.max_examples_per_chapter,
            temperature=generation.temperature,
            registry=self.registry,
        )
        if synthesizer is not None and not (
            synthesizer.deterministic or generation.temperature == 0.0
        ):
            job.reproducible = False
        overview = OverviewGenerator(synthesizer, temperature=generation.temperature)
        ordered = [graph.abstractions[i] for i in result.order]
        job.chapters, job.overview = await self._guarded(
            self._generate(job, plans, generator, overview, ordered, callback)
        )

        # Linking
        await self._advance(job, JobState.LINKING, callback, "Linking chapters")
        linker = CrossReferenceLinker(
            project_name=job.repository.name,
            graph=graph,
            chapters=job.chapters,
            overview=job.overview,
            architecture_diagram=job.architecture_diagram,
            relationship_diagram=job.relationship_diagram,
        )
        output = linker.link()

        # Publishing is the commit point: cancellation is honoured up to here only
        self.cancel_token.raise_if_cancelled()
        emitter = ArtifactEmitter(self.output_root)
        job.output_path = await asyncio.to_thread(emitter.emit, job.job_id, output)
        job.transition(JobState.EMITTED)
        message = f"Tutorial written to {job.output_path}"
        logger.info(f"Job {job.job_id}: {message}")
        await self._progress(callback, job, message=message)

    async def _generate(
        self,
        job: TutorialJob,
        plans: tuple[ChapterPlan, ...],
        generator: ChapterGenerator,
        overview: OverviewGenerator,
        ordered: list[Abstraction],
        callback: ProgressCallback | None,
    ) -> tuple[list[Chapter], str]:
        """Fan out chapter and overview generation under one TaskGroup."""
        completed = 0

        async def chapter_task(plan: ChapterPlan) -> Chapter:
            nonlocal completed
            try:
                chapter = await generator.generate(plan)
            except GenerationError as e:
                if self.config.generation.on_chapter_failure == "fail":
                    raise
                logger.warning(f"Using placeholder for chapter {plan.ordinal}: {e}")
                job.warn(f"Chapter {plan.ordinal} ({plan.title}) is incomplete: {e}")
                chapter = generator.placeholder(plan, e)
            completed += 1
            await self._progress(
                callback,
                job,
                completed,
                len(plans),
                f"Generated chapter {plan.ordinal}: {plan.title}",
            )
            return chapter

        async with asyncio.TaskGroup() as tg:
            chapter_tasks = [tg.create_task(chapter_task(plan)) for plan in plans]
            overview_task = tg.create_task(
                overview.generate(job.repository.name, ordered, job.files)
            )

        return [task.result() for task in chapter_tasks], overview_task.result()

    def plan_chapters(
        self,
        project_name: str,
        graph: AbstractionGraph,
        order: tuple[int, ...],
        files: list[SourceFile],
        parsed: dict[str, ParsedFile],
    ) -> tuple[ChapterPlan, ...]:
        """Freeze one ChapterPlan per abstraction, in chapter order."""
        refs = tuple(
            ChapterRef(position, graph.abstractions[index].id, graph.abstractions[index].name)
            for position, index in enumerate(order, start=1)
        )
        ref_by_index = {index: refs[position] for position, index in enumerate(order)}
        files_by_path = {f.path: f for f in files}
        diagrams = ChapterDiagramGenerator()

        plans = []
        for position, index in enumerate(order, start=1):
            abstraction = graph.abstractions[index]
            previous = next_link = None
            if position > 1:
                ref = refs[position - 2]
                previous = ChapterLink(ref.ordinal, ref.title, ref.filename, "previous")
            if position < len(refs):
                ref = refs[position]
                next_link = ChapterLink(ref.ordinal, ref.title, ref.filename, "next")

            flow = self._trace(abstraction, files_by_path, parsed)
            plans.append(
                ChapterPlan(
                    ordinal=position,
                    abstraction=abstraction,
                    graph=graph,
                    files=tuple(
                        files_by_path[path] for path in abstraction.files if path in files_by_path
                    ),
                    chapters=refs,
                    project_name=project_name,
                    previous=previous,
                    next=next_link,
                    flow=flow,
                    diagram=diagrams.generate(graph, index, flow),
                    neighbours=tuple(
                        (ref_by_index[n], _relation_sentence(graph, index, n))
                        for n in graph.neighbors(index)
                    ),
                )
            )
        return tuple(plans)

    def _trace(
        self,
        abstraction: Abstraction,
        files: dict[str, SourceFile],
        parsed: dict[str, ParsedFile],
    ) -> ControlFlow | None:
        """Control flow of the first traceable symbol of the abstraction."""
        fallback = None
        for symbol in abstraction.symbols:
            for path in abstraction.files:
                if path not in files or path not in parsed:
                    continue
                if parsed[path].find_symbol(symbol) is None:
                    continue
                flow = trace_flow(files[path], parsed[path], symbol)
                if flow is None or not flow.steps:
                    continue
                if not flow.is_trivial:
                    return flow
                fallback = fallback or flow
        return fallback


def _relation_sentence(graph: AbstractionGraph, index: int, other: int) -> str:
    """Plain-language description of how two abstractions relate."""
    own = graph.abstractions[index]
    sentences = []
    for rel in graph.edges_for(index):
        if rel.source == index and rel.target == other:
            sentences.append(f"{own.name} {rel.label} {graph.abstractions[other].name}")
        elif rel.source == other and rel.target == index:
            sentences.append(f"{graph.abstractions[other].name} {rel.label} {own.name}")
    return "; ".join(sentences)
