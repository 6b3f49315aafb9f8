from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from release_orchestrator.core import CommandResult, CommandRunner, SubprocessRunner

from .models import DeploymentTarget

# OpenSSH reserves 255 for its own failures (unreachable host, refused auth, ...);
# anything else is the remote command's exit status.
SSH_CONNECTION_FAILURE = 255


def is_connection_failure(res: CommandResult) -> bool:
    return res.returncode == SSH_CONNECTION_FAILURE


class RemoteTransport(Protocol):
    target: DeploymentTarget

    def run(self, command: str, *, timeout: float) -> CommandResult: ...

    def upload(self, local: Path, remote_path: str, *, timeout: float) -> CommandResult: ...


@dataclass(slots=True)
class SshTransport:
    """
    Remote command execution and file transfer over the OpenSSH client with
    key-based, non-interactive authentication.
    """

    target: DeploymentTarget
    runner: CommandRunner = field(default_factory=SubprocessRunner)
    connect_timeout_s: int = 10
    known_hosts: str = "accept-new"

    def _options(self) -> list[str]:
        opts = [
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout_s}",
            "-o",
            f"StrictHostKeyChecking={self.known_hosts}",
        ]
        if self.target.key_path is not None:
            opts += ["-i", str(self.target.key_path), "-o", "IdentitiesOnly=yes"]
        return opts

    def ssh_command(self, command: str) -> list[str]:
        return [
            "ssh",
            *self._options(),
            "-p",
            str(self.target.port),
            self.target.destination,
            "--",
            command,
        ]

    def scp_command(self, local: Path, remote_path: str) -> list[str]:
        return [
            "scp",
            "-q",
            *self._options(),
            "-P",
            str(self.target.port),
            str(local),
            f"{self.target.destination}:{remote_path}",
        ]

    def run(self, command: str, *, timeout: float) -> CommandResult:
        return self.runner(self.ssh_command(command), timeout=timeout)

    def upload(self, local: Path, remote_path: str, *, timeout: float) -> CommandResult:
        return self.runner(self.scp_command(local, remote_path), timeout=timeout)
