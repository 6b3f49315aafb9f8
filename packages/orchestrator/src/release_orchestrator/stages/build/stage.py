from __future__ import annotations

from typing import Any

from release_orchestrator.pipeline import RunContext
from release_orchestrator.pipeline.events import EventType
from release_orchestrator.pipeline.parallel import fan_out
from release_orchestrator.project import LoadedProject

from .builder import ImageBuilder, build_context_for
from .models import BuildArtifact, BuildContext


def stage_build(
    ctx: RunContext,
    *,
    builder: ImageBuilder,
    loaded: LoadedProject,
    max_workers: int = 4,
) -> dict[str, Any]:
    identifier = str(ctx.require("identifier"))
    specs = loaded.project.select(ctx.meta.get("services"))
    contexts = [build_context_for(loaded, s) for s in specs]

    ctx.emit(
        EventType.BUILD_PLAN,
        stage="build",
        identifier=identifier,
        services=[c.service for c in contexts],
        max_workers=max_workers,
    )

    def _one(bc: BuildContext) -> BuildArtifact:
        ctx.emit(EventType.BUILD_SERVICE_START, stage="build", service=bc.service)
        art = builder.build(bc, identifier)
        ctx.emit(
            EventType.BUILD_SERVICE_FINISH,
            stage="build",
            service=bc.service,
            local_ref=art.local_ref,
        )
        return art

    built = fan_out(contexts, _one, max_workers=max_workers, thread_name_prefix="build")
    ctx.handoff["built"] = tuple(built)

    return {
        "identifier": identifier,
        "artifacts": [a.to_dict() for a in built],
        "_metrics": {"services": len(built)},
    }
