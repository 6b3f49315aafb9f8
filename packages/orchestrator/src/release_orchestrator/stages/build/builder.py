from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from release_orchestrator.core import BuildError, CommandRunner, SubprocessRunner
from release_orchestrator.project import LoadedProject, ServiceSpec

from .models import BuildArtifact, BuildContext

LATEST = "latest"

log = structlog.get_logger(__name__)


def build_context_for(loaded: LoadedProject, spec: ServiceSpec) -> BuildContext:
    return BuildContext(
        service=spec.name,
        image=spec.image,
        context_dir=loaded.context_dir(spec),
        dockerfile=loaded.dockerfile_path(spec),
        build_args=dict(spec.build_args),
        target=spec.target,
    )


@dataclass(slots=True)
class ImageBuilder:
    """
    Drives `docker build` for one service at a time.

    Build failures are never retried: a context the engine rejects needs a
    source fix, not another attempt.
    """

    runner: CommandRunner = field(default_factory=SubprocessRunner)
    timeout_s: float = 1800.0
    engine: str = "docker"

    def command(self, bc: BuildContext, identifier: str) -> list[str]:
        args = [
            self.engine,
            "build",
            "--file",
            str(bc.dockerfile),
            "--tag",
            f"{bc.image}:{identifier}",
            "--tag",
            f"{bc.image}:{LATEST}",
            "--label",
            f"org.opencontainers.image.revision={identifier}",
        ]
        for key in sorted(bc.build_args):
            args += ["--build-arg", f"{key}={bc.build_args[key]}"]
        if bc.target:
            args += ["--target", bc.target]
        args.append(str(bc.context_dir))
        return args

    def build(self, bc: BuildContext, identifier: str) -> BuildArtifact:
        blog = log.bind(service=bc.service, identifier=identifier)

        if not bc.context_dir.is_dir():
            raise BuildError(bc.service, f"build context not found: {bc.context_dir}")
        if not bc.dockerfile.is_file():
            raise BuildError(bc.service, f"Dockerfile not found: {bc.dockerfile}")

        blog.info("Building image", context=str(bc.context_dir))
        res = self.runner(self.command(bc, identifier), timeout=self.timeout_s)

        if res.timed_out:
            raise BuildError(bc.service, f"build timed out after {self.timeout_s:g}s\n{res.output}")
        if not res.ok:
            raise BuildError(bc.service, res.output or f"exit code {res.returncode}")

        blog.info("Image built", duration_ms=res.duration_ms)
        return BuildArtifact(
            service=bc.service,
            identifier=identifier,
            local_ref=f"{bc.image}:{identifier}",
            alias_ref=f"{bc.image}:{LATEST}",
        )
