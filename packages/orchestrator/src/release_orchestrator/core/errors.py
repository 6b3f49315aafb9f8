from __future__ import annotations

import traceback
from dataclasses import dataclass


class ReleaseError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback=traceback.format_exc(),
    )


class TransientError(ReleaseError):
    """
    Retryable failures such as network timeouts or a registry that dropped the connection
    """


class ConfigError(ReleaseError):
    """release.json, compose template or settings are unusable"""


class RevisionError(ReleaseError):
    """Source revision could not be resolved"""


class BuildError(ReleaseError):
    """
    Non-retryable: the build engine rejected a build context. Needs a source fix.
    """

    def __init__(self, service: str, engine_output: str) -> None:
        tail = engine_output.strip().splitlines()[-5:] if engine_output else []
        msg = f"Build failed for service {service!r}"
        if tail:
            msg += ": " + " | ".join(tail)
        super().__init__(msg)
        self.service = service
        self.engine_output = engine_output


class AuthError(ReleaseError):
    """Registry rejected the supplied credentials"""


class TransferError(ReleaseError):
    """Moving bytes to the registry or to the remote host failed"""


class RegistryTransferError(TransferError, TransientError):
    """Registry push or manifest check failed on the network path"""


class SyncError(TransferError):
    """
    Non-retryable: remote file sync failed. The remote directory may hold a mix of
    old and new files and needs manual inspection.
    """


class ConnectivityError(TransientError):
    """Deployment target unreachable"""


class SupervisorError(ReleaseError):
    """Remote `docker compose` pull/up exited nonzero"""

    def __init__(self, step: str, output: str) -> None:
        tail = output.strip().splitlines()[-5:] if output else []
        msg = f"Remote supervisor failed during {step}"
        if tail:
            msg += ": " + " | ".join(tail)
        super().__init__(msg)
        self.step = step
        self.output = output


class PipelineCancelled(ReleaseError):
    """Run was cancelled at a stage or step boundary"""
