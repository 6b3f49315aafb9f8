from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from release_orchestrator.core import BuildError, RevisionError
from release_orchestrator.project import LoadedProject
from release_orchestrator.stages.build import ImageBuilder, build_context_for
from release_orchestrator.stages.tag import VersionTagger, resolve_revision


def test_tag_is_deterministic() -> None:
    tagger = VersionTagger()
    assert tagger.tag("abc123") == "abc123"
    assert tagger.tag("abc123") == tagger.tag("abc123")


def test_tag_truncates_and_lowercases_hex() -> None:
    sha = "0123456789ABCDEF0123456789abcdef01234567"
    assert VersionTagger().tag(sha) == "0123456789ab"
    assert VersionTagger(tag_length=7).tag(sha) == "0123456"


def test_abbreviated_hex_is_kept_whole() -> None:
    tagger = VersionTagger()
    assert tagger.tag("ABCDEF1234567") == "abcdef1234567"
    assert tagger.tag("abcdef1234567") != tagger.tag("abcdef1234568")
    assert tagger.tag("f" * 64) == "f" * 12


def test_tag_hashes_non_hex_revisions() -> None:
    ident = VersionTagger().tag("feature/login-page")
    assert ident.startswith("r-")
    assert len(ident) == 2 + 12
    assert ident == VersionTagger().tag("feature/login-page")
    assert ident != VersionTagger().tag("feature/login-pages")


@pytest.mark.parametrize("revision", [None, "", "   "])
def test_tag_rejects_blank_revision(revision) -> None:
    with pytest.raises(ValueError):
        VersionTagger().tag(revision)


def test_resolve_revision_uses_git(fake_runner, tmp_path: Path) -> None:
    fake_runner.on("git", "rev-parse", stdout="abc123def4567890abc123def4567890abc123de\n")
    assert resolve_revision(tmp_path, runner=fake_runner).startswith("abc123def456")
    assert fake_runner.calls == [("git", "rev-parse", "--verify", "HEAD")]


def test_resolve_revision_failure(fake_runner, tmp_path: Path) -> None:
    fake_runner.on("git", returncode=128, stderr="fatal: not a git repository")
    with pytest.raises(RevisionError, match="not a git repository"):
        resolve_revision(tmp_path, runner=fake_runner)


def test_build_command_tags_identifier_and_latest(fake_runner, loaded: LoadedProject) -> None:
    spec = loaded.project.service_map["api"]
    bc = build_context_for(loaded, spec)
    builder = ImageBuilder(runner=fake_runner)

    art = builder.build(bc, "abc123")

    assert art.local_ref == "webapp-api:abc123"
    assert art.alias_ref == "webapp-api:latest"
    (argv,) = fake_runner.calls
    assert argv[:2] == ("docker", "build")
    assert "webapp-api:abc123" in argv and "webapp-api:latest" in argv
    assert argv[-1] == str(bc.context_dir)


def test_build_args_are_sorted(fake_runner, loaded: LoadedProject) -> None:
    bc = build_context_for(loaded, loaded.project.service_map["api"])
    bc = replace(bc, build_args={"B": "2", "A": "1"}, target="runtime")
    argv = ImageBuilder(runner=fake_runner).command(bc, "abc123")
    i = argv.index("--build-arg")
    assert argv[i : i + 4] == ["--build-arg", "A=1", "--build-arg", "B=2"]
    assert argv[argv.index("--target") + 1] == "runtime"


def test_build_failure_is_not_retried(fake_runner, loaded: LoadedProject) -> None:
    fake_runner.on("docker", "build", returncode=1, stderr="step 3/7\nCOPY failed: file not found")
    bc = build_context_for(loaded, loaded.project.service_map["api"])

    with pytest.raises(BuildError) as ei:
        ImageBuilder(runner=fake_runner).build(bc, "abc123")

    assert ei.value.service == "api"
    assert "COPY failed" in ei.value.engine_output
    assert len(fake_runner.calls) == 1


def test_build_timeout_is_build_error(fake_runner, loaded: LoadedProject) -> None:
    fake_runner.on("docker", "build", returncode=124, timed_out=True)
    bc = build_context_for(loaded, loaded.project.service_map["web"])
    with pytest.raises(BuildError, match="timed out"):
        ImageBuilder(runner=fake_runner, timeout_s=5).build(bc, "abc123")


def test_missing_context_fails_before_engine(fake_runner, loaded: LoadedProject) -> None:
    bc = build_context_for(loaded, loaded.project.service_map["api"])
    for f in bc.context_dir.iterdir():
        f.unlink()
    bc.context_dir.rmdir()

    with pytest.raises(BuildError, match="build context not found"):
        ImageBuilder(runner=fake_runner).build(bc, "abc123")
    assert fake_runner.calls == []
