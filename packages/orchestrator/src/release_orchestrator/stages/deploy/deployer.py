from __future__ import annotations

import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Sequence

import structlog
from release_orchestrator.core import (
    CancelToken,
    ConnectivityError,
    SupervisorError,
    SyncError,
    TargetLock,
    atomic_write_text,
    call_with_retries,
    new_run_id,
)
from release_orchestrator.core.paths import RunLayout
from release_orchestrator.project import ServiceSetDescriptor, StaticFile

from .models import DeployAttempt, DeploymentTarget, DeployOutcome, DeployState
from .transport import RemoteTransport, is_connection_failure

log = structlog.get_logger(__name__)

Transition = Callable[[DeployState, DeployState], None]


@dataclass(slots=True)
class RemoteDeployer:
    """
    Converges a remote host onto a ServiceSetDescriptor in four ordered steps:

      1. ensure the remote working directory exists
      2. sync compose.yml and static config into it (last write wins)
      3. `docker compose pull`   - every image, before anything is stopped
      4. `docker compose up -d --remove-orphans`

    A failure in steps 1-2 never reaches the supervisor and a failed pull never
    reaches `up`, so running services are only replaced once every new image
    is on the host. There is no automated rollback: redeploy a prior
    identifier instead.
    """

    transport: RemoteTransport
    compose_project: str
    descriptor_name: str = "compose.yml"
    compose_command: str = "docker compose"
    remote_timeout_s: float = 600.0
    connect_max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_cap: float = 8.0
    layout: RunLayout | None = None
    sleep: Callable[[float], None] | None = None

    @property
    def target(self) -> DeploymentTarget:
        return self.transport.target

    # -- remote primitives -------------------------------------------------

    def _remote(self, command: str, *, step: str, idempotent: bool) -> str:
        """
        Run one remote command. Connection failures are retried only for
        idempotent commands; everything else maps to the step's error kind.
        """

        def _once() -> str:
            res = self.transport.run(command, timeout=self.remote_timeout_s)
            if res.ok:
                return res.stdout
            if is_connection_failure(res):
                if idempotent:
                    raise ConnectivityError(
                        f"{self.target.destination} unreachable during {step}: {res.output}"
                    )
                raise SyncError(f"Connection lost during {step}: {res.output}")
            if step in ("pull", "converge"):
                raise SupervisorError(step, res.output or f"exit code {res.returncode}")
            if step == "ensure_directory" and res.timed_out:
                raise ConnectivityError(f"{self.target.destination} timed out during {step}")
            raise SyncError(f"{step} failed on {self.target.destination}: {res.output}")

        if not idempotent:
            return _once()
        return call_with_retries(
            _once,
            what=f"deploy.{step}",
            max_attempts=self.connect_max_attempts,
            backoff_base=self.backoff_base,
            backoff_cap=self.backoff_cap,
            retry_on=(ConnectivityError,),
            sleep=self.sleep,
            target=self.target.target_key,
        )

    def _compose(self, *args: str) -> str:
        base = [*shlex.split(self.compose_command), "-p", self.compose_project, "-f", self.descriptor_name]
        cmd = " ".join(shlex.quote(a) for a in [*base, *args])
        return f"cd {shlex.quote(self.target.remote_dir)} && {cmd}"

    # -- steps -----------------------------------------------------------------

    def ensure_directory(self, static_files: Sequence[StaticFile]) -> None:
        dirs = {self.target.remote_dir}
        for f in static_files:
            parent = PurePosixPath(f.remote_name).parent
            if str(parent) != ".":
                dirs.add(self.target.remote_path(str(parent)))
        quoted = " ".join(shlex.quote(d) for d in sorted(dirs))
        self._remote(f"mkdir -p {quoted}", step="ensure_directory", idempotent=True)

    def sync_config(
        self,
        descriptor: ServiceSetDescriptor,
        static_files: Sequence[StaticFile],
        staging_dir: Path,
    ) -> list[str]:
        local_descriptor = Path(staging_dir) / self.descriptor_name
        atomic_write_text(local_descriptor, descriptor.content)

        files = [(local_descriptor, self.descriptor_name)]
        files += [(f.local_path, f.remote_name) for f in static_files]

        suffix = f".{new_run_id()[:8]}.tmp"
        moves: list[str] = []
        for local, name in files:
            final = self.target.remote_path(name)
            tmp = final + suffix
            res = self.transport.upload(local, tmp, timeout=self.remote_timeout_s)
            if not res.ok:
                raise SyncError(f"Upload of {name} to {self.target.destination} failed: {res.output}")
            moves.append(f"mv -f {shlex.quote(tmp)} {shlex.quote(final)}")

        # All uploads landed; swap them in with one command.
        self._remote(" && ".join(moves), step="sync", idempotent=False)
        return [name for _, name in files]

    def pull(self) -> None:
        self._remote(self._compose("pull"), step="pull", idempotent=True)

    def converge(self) -> None:
        self._remote(
            self._compose("up", "-d", "--remove-orphans"), step="converge", idempotent=True
        )

    # -- contract ---------------------------------------------------------------

    def deploy(
        self,
        descriptor: ServiceSetDescriptor,
        static_files: Sequence[StaticFile] = (),
        *,
        staging_dir: Path | None = None,
        cancel: CancelToken | None = None,
        on_transition: Transition | None = None,
    ) -> DeployOutcome:
        key = self.target.target_key
        lock_path = self.layout.target_lock(key) if self.layout is not None else None
        dlog = log.bind(target=key, identifier=descriptor.identifier)

        dlog.info("Waiting for target lock")
        with TargetLock(key, lock_path):
            dlog.info("Target lock acquired")
            if staging_dir is not None:
                return self._deploy_locked(
                    descriptor, static_files, Path(staging_dir), cancel, on_transition, dlog
                )
            with tempfile.TemporaryDirectory(prefix="release-deploy-") as tmp:
                return self._deploy_locked(
                    descriptor, static_files, Path(tmp), cancel, on_transition, dlog
                )

    def _deploy_locked(
        self,
        descriptor: ServiceSetDescriptor,
        static_files: Sequence[StaticFile],
        staging_dir: Path,
        cancel: CancelToken | None,
        on_transition: Transition | None,
        dlog,
    ) -> DeployOutcome:
        attempt = DeployAttempt(target_key=self.target.target_key)

        def _move(to: DeployState) -> None:
            before = attempt.state
            if to is DeployState.FAILED:
                attempt.fail()
            else:
                attempt.advance(to)
            dlog.info("Deploy step", state_from=before.value, state_to=to.value)
            if on_transition is not None:
                on_transition(before, to)

        steps: list[tuple[str, Callable[[], object], DeployState]] = [
            ("ensure_directory", lambda: self.ensure_directory(static_files), DeployState.DIRECTORY_ENSURED),
            ("sync", lambda: self.sync_config(descriptor, static_files, staging_dir), DeployState.CONFIG_SYNCED),
            ("pull", self.pull, DeployState.ARTIFACTS_PULLED),
            ("converge", self.converge, DeployState.SERVICES_CONVERGED),
        ]

        try:
            for name, fn, reached in steps:
                if cancel is not None:
                    cancel.raise_if_cancelled(f"deploy step {name}")
                fn()
                _move(reached)
        except Exception:
            _move(DeployState.FAILED)
            raise

        return DeployOutcome(
            target_key=attempt.target_key,
            state=attempt.state,
            steps=tuple(attempt.steps),
            descriptor_sha256=descriptor.sha256,
            images=dict(descriptor.images),
        )
