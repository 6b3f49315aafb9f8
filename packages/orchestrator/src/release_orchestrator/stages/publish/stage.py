from __future__ import annotations

from typing import Any

from release_orchestrator.pipeline import RunContext
from release_orchestrator.pipeline.events import EventType
from release_orchestrator.pipeline.parallel import fan_out
from release_orchestrator.project import LoadedProject
from release_orchestrator.stages.build import BuildArtifact

from .models import PublishedArtifact
from .publisher import RegistryPublisher
from .secrets import SecretProvider


def stage_publish(
    ctx: RunContext,
    *,
    publisher: RegistryPublisher,
    secrets: SecretProvider,
    max_workers: int = 4,
) -> dict[str, Any]:
    built: tuple[BuildArtifact, ...] = ctx.require("built")
    credentials = secrets.registry_credentials()

    ctx.emit(
        EventType.PUBLISH_LOGIN,
        stage="publish",
        registry=credentials.registry,
        username=credentials.username,
    )
    publisher.login(credentials)

    def _one(art: BuildArtifact) -> PublishedArtifact:
        ctx.emit(EventType.PUBLISH_SERVICE_START, stage="publish", service=art.service)
        pub = publisher.publish(art, credentials)
        ctx.emit(
            EventType.PUBLISH_SERVICE_VERIFIED,
            stage="publish",
            service=pub.service,
            registry_ref=pub.registry_ref,
            digest=pub.digest,
        )
        return pub

    published = fan_out(list(built), _one, max_workers=max_workers, thread_name_prefix="publish")
    ctx.handoff["published"] = tuple(published)

    return {
        "published": [p.to_dict() for p in published],
        "_metrics": {"services": len(published)},
    }


def stage_resolve(
    ctx: RunContext,
    *,
    publisher: RegistryPublisher,
    secrets: SecretProvider | None,
    loaded: LoadedProject,
) -> dict[str, Any]:
    """
    Redeploy path: look up an identifier published by an earlier run instead
    of building and pushing again. The identifier is taken as given, never re-tagged.
    """
    identifier = str(ctx.meta.get("identifier") or "").strip()
    if not identifier:
        raise ValueError("stage_resolve requires ctx.meta['identifier']")
    ctx.handoff["identifier"] = identifier
    specs = loaded.project.select(ctx.meta.get("services"))
    credentials = secrets.registry_credentials() if secrets is not None else None

    published = []
    for spec in specs:
        pub = publisher.resolve(spec.name, spec.image, identifier, credentials)
        ctx.emit(
            EventType.PUBLISH_SERVICE_VERIFIED,
            stage="resolve",
            service=pub.service,
            registry_ref=pub.registry_ref,
            digest=pub.digest,
        )
        published.append(pub)

    ctx.handoff["published"] = tuple(published)
    return {
        "published": [p.to_dict() for p in published],
        "_metrics": {"services": len(published)},
    }
