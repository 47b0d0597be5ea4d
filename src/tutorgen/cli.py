"""Command-line entry point: ``tutorgen ROOT``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from tutorgen.config import Config, ConfigError, load_settings
from tutorgen.generation.job import TutorialJob
from tutorgen.generation.orchestrator import JobProgress, TutorialOrchestrator
from tutorgen.llm.client import LLMClient
from tutorgen.llm.fixture import FixtureSynthesizer
from tutorgen.llm.synthesizer import ContentSynthesizer

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tutorgen",
        description="Generate a chaptered markdown tutorial from a source repository.",
    )
    parser.add_argument("root", help="Path to the repository root.")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Directory receiving the job directory (defaults to [paths].output_dir).",
    )
    parser.add_argument("--name", default=None, help="Project name used in titles.")
    parser.add_argument(
        "--include",
        action="append",
        default=[],
        metavar="GLOB",
        help="Only scan files matching GLOB. May be repeated.",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="GLOB",
        help="Skip files matching GLOB. May be repeated.",
    )
    parser.add_argument("--job-id", default=None, help="Job identifier (defaults to a UUID).")
    parser.add_argument("--config", type=Path, default=None, help="INI settings file.")
    backend = parser.add_mutually_exclusive_group()
    backend.add_argument(
        "--fixtures",
        type=Path,
        default=None,
        metavar="YAML",
        help="Answer generative calls from a fixture file instead of an LLM.",
    )
    backend.add_argument(
        "--static-only",
        action="store_true",
        help="Write the tutorial from static analysis alone, without an LLM.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Increase log verbosity for troubleshooting.",
    )
    return parser


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for a CLI run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )
    # LiteLLM is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def build_synthesizer(args: argparse.Namespace, config: Config) -> ContentSynthesizer | None:
    """Pick the generative backend requested on the command line.

    Raises:
        ValueError: If the fixture file is invalid.
        OSError: If the fixture file cannot be read.
    """
    if args.static_only:
        return None
    if args.fixtures is not None:
        return FixtureSynthesizer.from_yaml(args.fixtures)
    return LLMClient(
        provider=config.active_provider,
        model=config.active_model,
        api_key=config.llm_api_key,
        endpoint=config.llm_endpoint,
        log_path=config.llm_log_path,
        temperature=config.generation.temperature,
        max_tokens=config.llm.max_tokens,
    )


async def _report(progress: JobProgress) -> None:
    if progress.total_steps:
        logger.debug(f"[{progress.step}/{progress.total_steps}] {progress.message}")


async def run_job(orchestrator: TutorialOrchestrator, args: argparse.Namespace) -> TutorialJob:
    """Run one job, cancelling it on SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.cancel, f"received {sig.name}")
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            pass
    return await orchestrator.run(
        args.root,
        job_id=args.job_id,
        project_name=args.name,
        include_patterns=args.include,
        exclude_patterns=args.exclude,
        progress_callback=_report,
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint. Returns 0 when the tutorial was emitted, 1 otherwise."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        config = load_settings(args.config) if args.config else load_settings()
    except ConfigError as e:
        parser.exit(2, f"tutorgen: invalid configuration: {e}\n")

    try:
        synthesizer = build_synthesizer(args, config)
    except (ValueError, OSError) as e:
        parser.exit(2, f"tutorgen: cannot load fixtures: {e}\n")

    orchestrator = TutorialOrchestrator(
        synthesizer=synthesizer,
        config=config,
        output_root=args.output,
    )
    job = asyncio.run(run_job(orchestrator, args))

    for warning in job.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if not job.succeeded:
        error = job.error
        detail = f"{error.code}: {error.message}" if error else job.state.value
        print(f"tutorgen: job {job.job_id} {job.state.value}: {detail}", file=sys.stderr)
        return 1

    print(job.output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
