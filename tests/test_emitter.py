"""Atomic emit tests."""

from pathlib import Path

import pytest

from tutorgen.errors import EmitError
from tutorgen.generation import ArtifactEmitter, staging_path_for

FILES = {
    "index.md": "# Tutorial: Sample\n",
    "chapter_01.md": "# Chapter 1: Report",
}


def test_emit_writes_every_file(tmp_path: Path):
    """Files land under output_root/job_id with a trailing newline."""
    path = ArtifactEmitter(tmp_path).emit("job1", FILES)

    assert path == tmp_path / "job1"
    assert sorted(p.name for p in path.iterdir()) == ["chapter_01.md", "index.md"]
    assert (path / "chapter_01.md").read_text() == "# Chapter 1: Report\n"


def test_emit_leaves_no_staging_directory(tmp_path: Path):
    """Only the published directory remains after an emit."""
    ArtifactEmitter(tmp_path).emit("job1", FILES)

    assert not staging_path_for(tmp_path, "job1").exists()
    assert [p.name for p in tmp_path.iterdir()] == ["job1"]


def test_re_emit_replaces_previous_version(tmp_path: Path):
    """A second emit swaps in the new file set completely."""
    emitter = ArtifactEmitter(tmp_path)
    emitter.emit("job1", {**FILES, "chapter_02.md": "old"})

    path = emitter.emit("job1", FILES)

    assert not (path / "chapter_02.md").exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["job1"]


def test_emit_is_byte_identical(tmp_path: Path):
    """The same files always produce the same bytes."""
    first = ArtifactEmitter(tmp_path / "a").emit("job1", FILES)
    second = ArtifactEmitter(tmp_path / "b").emit("job1", FILES)

    for name in FILES:
        assert (first / name).read_bytes() == (second / name).read_bytes()


@pytest.mark.parametrize("job_id", ["", "../escape", ".hidden"])
def test_emit_rejects_unsafe_job_ids(tmp_path: Path, job_id):
    """Job ids must be plain directory names."""
    with pytest.raises(EmitError, match="Invalid job id"):
        ArtifactEmitter(tmp_path).emit(job_id, FILES)


def test_emit_retries_once_on_filesystem_error(tmp_path: Path, monkeypatch):
    """A transient write failure is retried."""
    emitter = ArtifactEmitter(tmp_path)
    original = emitter._write
    attempts = []

    def flaky(staging_path, files):
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError("disk hiccup")
        original(staging_path, files)

    monkeypatch.setattr(emitter, "_write", flaky)

    path = emitter.emit("job1", FILES)

    assert len(attempts) == 2
    assert (path / "index.md").exists()


def test_emit_gives_up_after_second_failure(tmp_path: Path, monkeypatch):
    """Two failures raise EmitError and publish nothing."""
    emitter = ArtifactEmitter(tmp_path)

    def broken(staging_path, files):
        staging_path.mkdir(parents=True, exist_ok=True)
        raise OSError("read-only filesystem")

    monkeypatch.setattr(emitter, "_write", broken)

    with pytest.raises(EmitError, match="read-only filesystem"):
        emitter.emit("job1", FILES)

    assert not (tmp_path / "job1").exists()
    assert not staging_path_for(tmp_path, "job1").exists()
