"""Error taxonomy for tutorial jobs.

Fatal errors derive from TutorialError. A job that hits one ends in the
FAILED state with the error's code and message; isolated failures (a single
unreadable file, a single chapter) are logged and handled locally.
"""

from __future__ import annotations


class TutorialError(Exception):
    """Base class for fatal tutorial job errors."""

    @property
    def code(self) -> str:
        """Taxonomy code reported on a failed job."""
        return type(self).__name__


class ScanError(TutorialError):
    """Raised when the repository root cannot be read."""

    pass


class ExtractionError(TutorialError):
    """Raised when concept extraction fails after all retries."""

    pass


class GenerationError(TutorialError):
    """Raised when a chapter cannot be generated after all retries.

    Attributes:
        abstraction_id: Abstraction whose chapter failed.
        attempts: Number of attempts made.
    """

    def __init__(self, message: str, abstraction_id: str = "", attempts: int = 0):
        super().__init__(message)
        self.abstraction_id = abstraction_id
        self.attempts = attempts


class BrokenLinkError(TutorialError):
    """Raised when a chapter reference does not resolve.

    Attributes:
        target: The unresolved reference target.
        source: File or chapter that contained the reference.
    """

    def __init__(self, message: str, target: str = "", source: str = ""):
        super().__init__(message)
        self.target = target
        self.source = source


class EmitError(TutorialError):
    """Raised when the output file set cannot be written."""

    pass


class JobCancelled(TutorialError):
    """Raised when a job's cancellation token fires."""

    pass


class CycleDetectedWarning(UserWarning):
    """Recorded when the sequencer breaks a cycle in the abstraction graph.

    Not raised: the sequencer logs it and attaches it to the job.

    Attributes:
        source: Name of the abstraction at the tail of the removed edge.
        target: Name of the abstraction at the head of the removed edge.
        unblocked: Number of abstractions released by removing the edge.
    """

    def __init__(self, source: str, target: str, unblocked: int = 0):
        super().__init__(
            f"Cycle detected: dropped ordering edge {source} -> {target} "
            f"(unblocks {unblocked} abstraction{'s' if unblocked != 1 else ''})"
        )
        self.source = source
        self.target = target
        self.unblocked = unblocked
