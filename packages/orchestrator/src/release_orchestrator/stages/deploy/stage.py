from __future__ import annotations

from typing import Any

from release_orchestrator.pipeline import RunContext
from release_orchestrator.pipeline.events import EventType
from release_orchestrator.project import LoadedProject, load_template, render_descriptor
from release_orchestrator.stages.publish import PublishedArtifact

from .deployer import RemoteDeployer
from .models import DeployState


def stage_deploy(
    ctx: RunContext,
    *,
    deployer: RemoteDeployer,
    loaded: LoadedProject,
) -> dict[str, Any]:
    identifier = str(ctx.require("identifier"))
    published: tuple[PublishedArtifact, ...] = ctx.require("published")

    descriptor = render_descriptor(
        load_template(loaded.template_path),
        identifier=identifier,
        images={p.service: p.registry_ref for p in published},
    )
    ctx.handoff["descriptor"] = descriptor
    ctx.emit(
        EventType.DESCRIPTOR_RENDERED,
        stage="deploy",
        sha256=descriptor.sha256,
        services=descriptor.services,
    )

    def _on_transition(before: DeployState, after: DeployState) -> None:
        ctx.emit(
            EventType.DEPLOY_STEP_FINISH,
            stage="deploy",
            state_from=before.value,
            state_to=after.value,
        )

    ctx.emit(EventType.DEPLOY_LOCK_WAIT, stage="deploy", target=deployer.target.target_key)
    outcome = deployer.deploy(
        descriptor,
        loaded.static_files(),
        staging_dir=ctx.run_root,
        cancel=ctx.cancel,
        on_transition=_on_transition,
    )
    ctx.handoff["deploy"] = outcome

    artifact = ctx.record_artifact(
        stage="deploy",
        path=ctx.run_root / deployer.descriptor_name,
        content_type="application/yaml",
    )
    ctx.emit(EventType.DEPLOY_FINISH, stage="deploy", **outcome.to_dict())

    return {
        "target": deployer.target.to_dict(),
        "outcome": outcome.to_dict(),
        "_artifacts": [artifact],
        "_metrics": {"services": len(descriptor.images), "steps": len(outcome.steps)},
    }
