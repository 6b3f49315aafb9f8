from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import SecretStr
from release_orchestrator.core import ConfigError, Settings

from .models import RegistryCredentials


class SecretProvider(Protocol):
    """
    Capability that hands out already-resolved registry credentials. Where the
    secret comes from (env, mounted file, a vault agent) is not our concern.
    """

    def registry_credentials(self) -> RegistryCredentials: ...


@dataclass(frozen=True, slots=True)
class StaticSecretProvider:
    credentials: RegistryCredentials

    def registry_credentials(self) -> RegistryCredentials:
        return self.credentials


@dataclass(frozen=True, slots=True)
class FileSecretProvider:
    """
    Reads the secret from a file at call time (docker/k8s secret mounts).
    """

    registry: str
    username: str
    path: Path

    def registry_credentials(self) -> RegistryCredentials:
        try:
            raw = Path(self.path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read registry secret file {self.path}: {e}") from e
        secret = raw.strip()
        if not secret:
            raise ConfigError(f"Registry secret file {self.path} is empty")
        return RegistryCredentials(
            registry=self.registry, username=self.username, secret=SecretStr(secret)
        )


def provider_from_settings(s: Settings) -> SecretProvider:
    """
    RELEASE_REGISTRY_PASSWORD_FILE wins over RELEASE_REGISTRY_PASSWORD.
    """
    if not s.registry_username:
        raise ConfigError("RELEASE_REGISTRY_USERNAME is not set")

    if s.registry_password_file is not None:
        return FileSecretProvider(
            registry=s.registry, username=s.registry_username, path=s.registry_password_file
        )

    if s.registry_password is None or not s.registry_password.get_secret_value():
        raise ConfigError(
            "Neither RELEASE_REGISTRY_PASSWORD_FILE nor RELEASE_REGISTRY_PASSWORD is set"
        )
    return StaticSecretProvider(
        RegistryCredentials(
            registry=s.registry, username=s.registry_username, secret=s.registry_password
        )
    )
