from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import NewType

from release_orchestrator.core import (
    CommandRunner,
    RevisionError,
    SubprocessRunner,
    sha256_text,
)

ArtifactIdentifier = NewType("ArtifactIdentifier", str)

_HEX = re.compile(r"^[0-9a-f]{6,64}$")
_FULL_SHA_LENGTHS = (40, 64)
# Docker tag grammar: [A-Za-z0-9_][A-Za-z0-9_.-]{0,127}
_TAG = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]{0,127}$")


@dataclass(frozen=True, slots=True)
class VersionTagger:
    """
    Revision -> image tag. Pure: the same revision always yields the same tag.

    Full git shas (SHA-1 or SHA-256) are shortened to `tag_length`. Other hex
    revisions are kept whole, so `abc123` tags as `abc123` and two distinct
    abbreviations never share a tag. Anything else is hashed into
    `r-<sha256 prefix>`.
    """

    tag_length: int = 12

    def tag(self, revision: str | None) -> ArtifactIdentifier:
        if revision is None or not str(revision).strip():
            raise ValueError("A source revision is required to derive an identifier")

        rev = str(revision).strip().lower()
        if _HEX.match(rev):
            ident = rev[: self.tag_length] if len(rev) in _FULL_SHA_LENGTHS else rev
        else:
            ident = "r-" + sha256_text(str(revision).strip())[: self.tag_length]

        if not _TAG.match(ident):
            raise ValueError(f"Derived identifier is not a valid image tag: {ident!r}")
        return ArtifactIdentifier(ident)


def resolve_revision(
    repo_dir: Path,
    *,
    runner: CommandRunner | None = None,
    timeout: float = 30.0,
) -> str:
    """
    Full commit sha of HEAD in `repo_dir`.
    """
    run = runner or SubprocessRunner()
    res = run(["git", "rev-parse", "--verify", "HEAD"], timeout=timeout, cwd=Path(repo_dir))
    if not res.ok:
        raise RevisionError(f"git rev-parse failed in {repo_dir}: {res.output}")
    sha = res.stdout.strip()
    if not _HEX.match(sha):
        raise RevisionError(f"Unexpected git rev-parse output: {sha!r}")
    return sha
