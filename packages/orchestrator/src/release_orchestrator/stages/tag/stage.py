from __future__ import annotations

from typing import TypedDict

from release_orchestrator.pipeline import RunContext
from release_orchestrator.pipeline.events import EventType

from .tagger import VersionTagger


class StageTagResult(TypedDict):
    revision: str
    identifier: str


def stage_tag(ctx: RunContext, *, tagger: VersionTagger) -> StageTagResult:
    if "revision" not in ctx.meta:
        raise ValueError("stage_tag requires ctx.meta['revision']")

    revision = str(ctx.meta["revision"])
    identifier = tagger.tag(revision)
    ctx.handoff["identifier"] = identifier

    ctx.emit(EventType.TAG_RESOLVED, stage="tag", revision=revision, identifier=identifier)
    return {"revision": revision, "identifier": identifier}
