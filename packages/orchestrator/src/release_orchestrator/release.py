from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx
from release_orchestrator.core import (
    CancelToken,
    CommandRunner,
    ConfigError,
    ILogger,
    RunLayout,
    RunProvenance,
    Settings,
    SubprocessRunner,
    get_logger,
    new_run_id,
    utc_now_iso,
)
from release_orchestrator.pipeline import (
    Failure,
    PipelineRunner,
    RunContext,
    RunnerConfig,
    RunReport,
    StageFn,
    StageResult,
)
from release_orchestrator.project import LoadedProject, check_deployable, load_template
from release_orchestrator.stages.build import ImageBuilder, stage_build
from release_orchestrator.stages.deploy import (
    DeploymentTarget,
    DeployOutcome,
    RemoteDeployer,
    SshTransport,
    stage_deploy,
)
from release_orchestrator.stages.publish import (
    PublishedArtifact,
    RegistryLocation,
    RegistryPublisher,
    SecretProvider,
    make_http_client,
    stage_publish,
    stage_resolve,
)
from release_orchestrator.stages.tag import VersionTagger, stage_tag

RELEASE_STAGES = ("tag", "build", "publish", "deploy")
REDEPLOY_STAGES = ("resolve", "deploy")

StageWrapper = Callable[[str, StageFn], StageFn]

# CLI command -> stage ids
COMMAND_STAGES: dict[str, tuple[str, ...]] = {
    "tag": ("tag",),
    "build": ("tag", "build"),
    "publish": ("tag", "build", "publish"),
    "run": RELEASE_STAGES,
    "deploy": REDEPLOY_STAGES,
}


@dataclass(frozen=True, slots=True)
class PipelineRun:
    """
    Terminal record of one run. `failure` is set exactly when status is "failed".
    """

    run_id: str
    revision: str
    identifier: str | None
    status: str
    failure: Failure | None
    stages: tuple[StageResult, ...]
    published: tuple[PublishedArtifact, ...] = ()
    deploy: DeployOutcome | None = None
    descriptor_sha256: str | None = None
    report_json: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def summary(self) -> str:
        if self.ok:
            return f"Success(identifier={self.identifier})"
        return str(self.failure)


@dataclass(slots=True)
class ReleaseComponents:
    """
    The four collaborators a release drives. Built from Settings by
    `ReleaseComponents.from_settings`; tests construct them directly with fakes.

    `deployer` is None when no target is configured; only the deploy stage needs it.
    """

    tagger: VersionTagger
    builder: ImageBuilder
    publisher: RegistryPublisher
    deployer: RemoteDeployer | None = None

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        *,
        loaded: LoadedProject,
        target: DeploymentTarget | None,
        runner: CommandRunner | None = None,
        http: httpx.Client | None = None,
    ) -> "ReleaseComponents":
        run = runner or SubprocessRunner()
        deployer = None
        if target is not None:
            deployer = RemoteDeployer(
                transport=SshTransport(target=target, runner=run),
                compose_project=loaded.project.project,
                descriptor_name=loaded.project.descriptor_name,
                remote_timeout_s=s.remote_timeout_s,
                connect_max_attempts=s.connect_max_attempts,
                backoff_base=s.backoff_base,
                backoff_cap=s.backoff_cap,
                layout=RunLayout(runs_root=s.runs_root, state_root=s.state_root),
            )
        return cls(
            tagger=VersionTagger(tag_length=s.tag_length),
            builder=ImageBuilder(runner=run, timeout_s=s.build_timeout_s),
            publisher=RegistryPublisher(
                location=RegistryLocation(
                    registry=s.registry,
                    namespace=s.registry_namespace,
                    api_url=s.registry_api_url,
                ),
                runner=run,
                http=http or make_http_client(timeout=s.http_timeout_s),
                push_timeout_s=s.push_timeout_s,
                max_attempts=s.publish_max_attempts,
                backoff_base=s.backoff_base,
                backoff_cap=s.backoff_cap,
            ),
            deployer=deployer,
        )


def target_from_settings(s: Settings) -> DeploymentTarget | None:
    if not s.target_host:
        return None
    return DeploymentTarget(
        host=s.target_host,
        remote_dir=s.target_remote_dir,
        user=s.target_user,
        port=s.target_port,
        key_path=s.target_key_path,
    )


@dataclass(slots=True)
class ReleasePipeline:
    """
    tag -> build (per service) -> publish (per service) -> deploy (all services).

    Stops at the first fatal failure and reports exactly one terminal outcome.
    Build and publish fan out across services on a worker pool; deploy waits
    for every service to be published and then runs once, under the target lock.
    """

    loaded: LoadedProject
    components: ReleaseComponents
    runs_root: Path
    max_workers: int = 4
    logger: ILogger = field(default_factory=lambda: get_logger("release"))

    def _stage_fn(self, stage_id: str, secrets: SecretProvider | None) -> StageFn:
        c = self.components
        if stage_id == "tag":
            return partial(stage_tag, tagger=c.tagger)
        if stage_id == "build":
            return partial(
                stage_build, builder=c.builder, loaded=self.loaded, max_workers=self.max_workers
            )
        if stage_id == "publish":
            if secrets is None:
                raise ConfigError("Publishing requires registry credentials")
            return partial(
                stage_publish, publisher=c.publisher, secrets=secrets, max_workers=self.max_workers
            )
        if stage_id == "resolve":
            return partial(stage_resolve, publisher=c.publisher, secrets=secrets, loaded=self.loaded)
        if stage_id == "deploy":
            if c.deployer is None:
                raise ConfigError("Deploying requires a target (RELEASE_TARGET_HOST)")
            return partial(stage_deploy, deployer=c.deployer, loaded=self.loaded)
        raise ValueError(f"Unknown stage: {stage_id}")

    def _check_deployable(self, services: Sequence[str] | None) -> None:
        """
        Reject a service selection the deploy stage could not converge, before
        anything is built or pushed.
        """
        selected = self.loaded.project.select(list(services) if services is not None else None)
        check_deployable(load_template(self.loaded.template_path), [s.name for s in selected])

    def execute(
        self,
        stage_ids: Sequence[str],
        *,
        revision: str,
        services: Sequence[str] | None = None,
        secrets: SecretProvider | None = None,
        run_id: str | None = None,
        cancel: CancelToken | None = None,
        extra_meta: dict[str, Any] | None = None,
        wrap: StageWrapper | None = None,
    ) -> PipelineRun:
        """
        Run `stage_ids` in order. `wrap` decorates each stage function (the CLI
        uses it for a progress spinner).
        """
        if "deploy" in stage_ids:
            self._check_deployable(services)

        stages = []
        for sid in stage_ids:
            fn = self._stage_fn(sid, secrets)
            stages.append(PipelineRunner.fn(sid, wrap(sid, fn) if wrap is not None else fn))

        runner = PipelineRunner(
            stages=stages,
            cfg=RunnerConfig(stop_on_failure=True),
            logger=self.logger,
        )

        rid = run_id or new_run_id()
        deployer = self.components.deployer
        meta: dict[str, Any] = {
            "project": self.loaded.project.project,
            "revision": revision,
            "services": list(services) if services is not None else None,
            "target": deployer.target.to_dict() if deployer is not None else None,
            "provenance": RunProvenance(run_id=rid, started_at_utc=utc_now_iso()).to_dict(),
            **(extra_meta or {}),
        }

        report, ctx = runner.run(run_root=self.runs_root, run_id=rid, meta=meta, cancel=cancel)
        run = _to_pipeline_run(report, ctx, revision=revision)

        if run.ok:
            self.logger.info(
                "Release succeeded",
                run_id=run.run_id,
                identifier=run.identifier,
                services=[p.service for p in run.published],
            )
        else:
            assert run.failure is not None
            self.logger.error(
                "Release failed",
                run_id=run.run_id,
                stage=run.failure.stage,
                cause=run.failure.cause,
                error=run.failure.message,
            )
        return run

    def run(
        self,
        revision: str,
        services: Sequence[str] | None,
        secrets: SecretProvider,
        *,
        run_id: str | None = None,
        cancel: CancelToken | None = None,
        wrap: StageWrapper | None = None,
    ) -> PipelineRun:
        """Full release of `revision`."""
        return self.execute(
            RELEASE_STAGES,
            revision=revision,
            services=services,
            secrets=secrets,
            run_id=run_id,
            cancel=cancel,
            wrap=wrap,
        )

    def redeploy(
        self,
        identifier: str,
        services: Sequence[str] | None,
        secrets: SecretProvider | None,
        *,
        run_id: str | None = None,
        cancel: CancelToken | None = None,
        wrap: StageWrapper | None = None,
    ) -> PipelineRun:
        """
        Deploy an identifier published by an earlier run (forward-fix or
        manual rollback). Nothing is built or pushed.
        """
        return self.execute(
            REDEPLOY_STAGES,
            revision=identifier,
            services=services,
            secrets=secrets,
            run_id=run_id,
            cancel=cancel,
            extra_meta={"identifier": identifier, "redeploy": True},
            wrap=wrap,
        )


def _to_pipeline_run(report: RunReport, ctx: RunContext, *, revision: str) -> PipelineRun:
    descriptor = ctx.handoff.get("descriptor")
    identifier = ctx.handoff.get("identifier")
    return PipelineRun(
        run_id=report.run_id,
        revision=revision,
        identifier=str(identifier) if identifier is not None else None,
        status=report.status,
        failure=report.failure,
        stages=tuple(report.stages),
        published=tuple(ctx.handoff.get("published", ())),
        deploy=ctx.handoff.get("deploy"),
        descriptor_sha256=descriptor.sha256 if descriptor is not None else None,
        report_json=report.report_json,
    )
