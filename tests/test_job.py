"""Tutorial job state machine tests."""

from pathlib import Path

import pytest

from tutorgen.errors import JobCancelled, ScanError
from tutorgen.generation import JobState, TutorialJob, allowed_transitions
from tutorgen.llm import LLMConnectionError
from tutorgen.repo import RepositoryDescriptor


def make_job() -> TutorialJob:
    return TutorialJob(repository=RepositoryDescriptor.from_path(Path("/tmp/sample")))


def test_job_walks_the_forward_path():
    """Each state leads to the next and is recorded in the history."""
    job = make_job()
    path = [
        JobState.SCANNING,
        JobState.EXTRACTING,
        JobState.SEQUENCING,
        JobState.GENERATING,
        JobState.LINKING,
        JobState.EMITTED,
    ]

    for state in path:
        job.transition(state)

    assert job.history == [JobState.PENDING, *path]
    assert job.succeeded
    assert job.state.terminal


def test_job_cannot_skip_states():
    """Jumping ahead is an illegal transition."""
    job = make_job()

    with pytest.raises(ValueError, match="pending -> generating"):
        job.transition(JobState.GENERATING)


def test_any_running_state_can_fail_or_cancel():
    """FAILED and CANCELLED are reachable from every non-terminal state."""
    for state in JobState:
        if state.terminal:
            assert allowed_transitions(state) == frozenset()
        else:
            assert {JobState.FAILED, JobState.CANCELLED} <= allowed_transitions(state)


def test_fail_records_taxonomy_code():
    """A failed job carries the error's code and message."""
    job = make_job()
    job.transition(JobState.SCANNING)

    job.fail(ScanError("Repository root does not exist: /nowhere"))

    assert job.state is JobState.FAILED
    assert job.error.code == "ScanError"
    assert "does not exist" in job.error.message
    with pytest.raises(ValueError):
        job.transition(JobState.EXTRACTING)


def test_backend_errors_keep_their_class_name():
    """Errors outside the taxonomy report their class name as code."""
    job = make_job()

    job.fail(LLMConnectionError("refused"))

    assert job.error.code == "LLMConnectionError"


def test_cancel_records_reason():
    """Cancelling ends the job in CANCELLED."""
    job = make_job()

    job.cancel(JobCancelled("user request"))

    assert job.state is JobState.CANCELLED
    assert job.error.code == "JobCancelled"
    assert not job.succeeded


def test_job_ids_are_unique():
    """Each job gets its own identifier."""
    assert make_job().job_id != make_job().job_id
