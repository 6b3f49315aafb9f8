from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class DeploymentTarget:
    """
    Remote host the service set runs on. Supplied from the environment and
    never mutated.
    """

    host: str
    remote_dir: str
    user: str = "root"
    port: int = 22
    key_path: Path | None = None

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("DeploymentTarget.host must not be empty")
        if not self.remote_dir.startswith("/"):
            raise ValueError(f"DeploymentTarget.remote_dir must be absolute: {self.remote_dir!r}")

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    @property
    def target_key(self) -> str:
        """
        Identity used for mutual exclusion between runs. The ssh user is left
        out: two logins converging the same directory on one host share a lock.
        """
        return f"{self.host.lower()}:{self.port}{self.remote_dir.rstrip('/') or '/'}"

    def remote_path(self, name: str) -> str:
        return f"{self.remote_dir.rstrip('/')}/{name}"

    def to_dict(self) -> dict[str, Any]:
        # key material stays out of reports
        return {
            "host": self.host,
            "user": self.user,
            "port": self.port,
            "remote_dir": self.remote_dir,
        }


class DeployState(StrEnum):
    IDLE = "idle"
    DIRECTORY_ENSURED = "directory_ensured"
    CONFIG_SYNCED = "config_synced"
    ARTIFACTS_PULLED = "artifacts_pulled"
    SERVICES_CONVERGED = "services_converged"
    FAILED = "failed"


_NEXT: dict[DeployState, DeployState] = {
    DeployState.IDLE: DeployState.DIRECTORY_ENSURED,
    DeployState.DIRECTORY_ENSURED: DeployState.CONFIG_SYNCED,
    DeployState.CONFIG_SYNCED: DeployState.ARTIFACTS_PULLED,
    DeployState.ARTIFACTS_PULLED: DeployState.SERVICES_CONVERGED,
}


@dataclass(slots=True)
class DeployAttempt:
    """
    State machine for one deploy:

      IDLE -> DIRECTORY_ENSURED -> CONFIG_SYNCED -> ARTIFACTS_PULLED -> SERVICES_CONVERGED

    Any failure moves to FAILED. Both end states are terminal.
    """

    target_key: str
    state: DeployState = DeployState.IDLE
    steps: list[str] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.state in (DeployState.SERVICES_CONVERGED, DeployState.FAILED)

    def advance(self, to: DeployState) -> None:
        expected = _NEXT.get(self.state)
        if to is not expected:
            raise RuntimeError(f"Illegal deploy transition {self.state} -> {to}")
        self.state = to
        self.steps.append(to.value)

    def fail(self) -> None:
        if self.terminal:
            raise RuntimeError(f"Deploy attempt already terminal ({self.state})")
        self.state = DeployState.FAILED


@dataclass(frozen=True, slots=True)
class DeployOutcome:
    target_key: str
    state: DeployState
    steps: tuple[str, ...]
    descriptor_sha256: str
    images: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state is DeployState.SERVICES_CONVERGED

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_key": self.target_key,
            "state": self.state.value,
            "steps": list(self.steps),
            "descriptor_sha256": self.descriptor_sha256,
            "images": dict(self.images),
        }
