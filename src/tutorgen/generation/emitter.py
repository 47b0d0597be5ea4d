"""Atomic publication of a tutorial file set.

A job builds in a hidden staging directory next to its target and is only
swapped into place once every file is written. This ensures that:
1. Interrupted or failed emits never leave a partial tutorial behind
2. Re-emitting a job replaces the previous version in one step
3. The same files always produce byte-identical output
"""

import logging
import os
import shutil
from pathlib import Path

from tutorgen.errors import EmitError

logger = logging.getLogger(__name__)


def staging_path_for(output_root: Path, job_id: str) -> Path:
    """Staging directory used while a job's files are written."""
    return output_root / f".{job_id}.building"


def prepare_staging_directory(staging_path: Path) -> None:
    """Create an empty staging directory.

    Always removes any existing staging directory first to avoid corruption
    from a previous incomplete emit.

    Args:
        staging_path: Path to the staging directory.
    """
    if staging_path.exists():
        shutil.rmtree(staging_path)
    staging_path.mkdir(parents=True)


def promote_staging_to_production(staging_path: Path, production_path: Path) -> None:
    """Swap the staging directory into place.

    The previous version, if any, is renamed aside first and removed after
    the swap, so production_path always holds a complete file set.

    Args:
        staging_path: Path to the fully written staging directory.
        production_path: Final job directory.
    """
    previous = production_path.with_name(f".{production_path.name}.previous")
    if previous.exists():
        shutil.rmtree(previous)
    if production_path.exists():
        os.replace(production_path, previous)
    os.replace(staging_path, production_path)
    if previous.exists():
        shutil.rmtree(previous)


class ArtifactEmitter:
    """Writes a job's markdown files under output_root/job_id."""

    def __init__(self, output_root: Path):
        """Initialize the emitter.

        Args:
            output_root: Directory that holds one subdirectory per job.
        """
        self.output_root = Path(output_root)

    def emit(self, job_id: str, files: dict[str, str]) -> Path:
        """Write files atomically.

        A filesystem error is retried once.

        Args:
            job_id: Job identifier, used as the directory name.
            files: File name to markdown content.

        Returns:
            Path of the published job directory.

        Raises:
            EmitError: If writing fails twice.
        """
        if not job_id or "/" in job_id or job_id.startswith("."):
            raise EmitError(f"Invalid job id '{job_id}'")

        production_path = self.output_root / job_id
        staging_path = staging_path_for(self.output_root, job_id)

        last_error: OSError | None = None
        for attempt in (1, 2):
            try:
                self._write(staging_path, files)
                promote_staging_to_production(staging_path, production_path)
                logger.info(f"Emitted {len(files)} files to {production_path}")
                return production_path
            except OSError as e:
                last_error = e
                logger.warning(f"Emit attempt {attempt} for job {job_id} failed: {e}")
                self._discard(staging_path)

        raise EmitError(f"Could not write tutorial for job {job_id}: {last_error}")

    def _write(self, staging_path: Path, files: dict[str, str]) -> None:
        prepare_staging_directory(staging_path)
        for name in sorted(files):
            target = staging_path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            content = files[name]
            if not content.endswith("\n"):
                content += "\n"
            with open(target, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)

    def _discard(self, staging_path: Path) -> None:
        try:
            if staging_path.exists():
                shutil.rmtree(staging_path)
        except OSError as e:
            logger.warning(f"Could not remove staging directory {staging_path}: {e}")
