"""Tutorial job aggregate and its state machine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from tutorgen.errors import CycleDetectedWarning, TutorialError
from tutorgen.generation.models import Chapter
from tutorgen.graph.models import AbstractionGraph
from tutorgen.repo.models import RepositoryDescriptor, SourceFile


class JobState(Enum):
    """Lifecycle of a tutorial job."""

    PENDING = "pending"
    SCANNING = "scanning"
    EXTRACTING = "extracting"
    SEQUENCING = "sequencing"
    GENERATING = "generating"
    LINKING = "linking"
    EMITTED = "emitted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (JobState.EMITTED, JobState.FAILED, JobState.CANCELLED)


# Forward path; any non-terminal state may also move to FAILED or CANCELLED
_FORWARD = {
    JobState.PENDING: JobState.SCANNING,
    JobState.SCANNING: JobState.EXTRACTING,
    JobState.EXTRACTING: JobState.SEQUENCING,
    JobState.SEQUENCING: JobState.GENERATING,
    JobState.GENERATING: JobState.LINKING,
    JobState.LINKING: JobState.EMITTED,
}


def allowed_transitions(state: JobState) -> frozenset[JobState]:
    """States reachable from state in one step."""
    if state.terminal:
        return frozenset()
    return frozenset({_FORWARD[state], JobState.FAILED, JobState.CANCELLED})


@dataclass(frozen=True)
class JobError:
    """Taxonomy code and message of the error that ended a job."""

    code: str
    message: str

    @classmethod
    def from_exception(cls, error: Exception) -> "JobError":
        code = error.code if isinstance(error, TutorialError) else type(error).__name__
        return cls(code=code, message=str(error))


@dataclass
class TutorialJob:
    """One run of the tutorial pipeline over a repository.

    Attributes:
        repository: Repository being documented.
        job_id: Identifier, also the output directory name.
        state: Current lifecycle state.
        files: Scanned files.
        graph: Frozen abstraction graph.
        order: Chapter order as arena indices.
        chapters: Generated chapters in order.
        overview: Overview paragraph of index.md.
        architecture_diagram: System architecture diagram.
        relationship_diagram: Component relationship diagram.
        warnings: Non-fatal problems (cycle breaks, placeholder chapters).
        cycle_warnings: Cycle breaks recorded by the sequencer.
        error: Error that ended the job, if it failed or was cancelled.
        reproducible: False when any generative call was non-deterministic.
        output_path: Published directory, once EMITTED.
        history: Every state the job has been in, in order.
    """

    repository: RepositoryDescriptor
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.PENDING
    files: list[SourceFile] = field(default_factory=list)
    graph: AbstractionGraph | None = None
    order: tuple[int, ...] = ()
    chapters: list[Chapter] = field(default_factory=list)
    overview: str = ""
    architecture_diagram: str | None = None
    relationship_diagram: str | None = None
    warnings: list[str] = field(default_factory=list)
    cycle_warnings: list[CycleDetectedWarning] = field(default_factory=list)
    error: JobError | None = None
    reproducible: bool = True
    output_path: Path | None = None
    history: list[JobState] = field(default_factory=lambda: [JobState.PENDING])

    def transition(self, new_state: JobState) -> None:
        """Move to new_state.

        Raises:
            ValueError: If the transition is not allowed.
        """
        if new_state not in allowed_transitions(self.state):
            raise ValueError(
                f"Illegal job transition {self.state.value} -> {new_state.value} "
                f"for job {self.job_id}"
            )
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: Exception) -> None:
        """End the job in FAILED, recording the error."""
        self.error = JobError.from_exception(error)
        self.transition(JobState.FAILED)

    def cancel(self, error: Exception) -> None:
        """End the job in CANCELLED, recording the reason."""
        self.error = JobError.from_exception(error)
        self.transition(JobState.CANCELLED)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.EMITTED
