from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import SecretStr

DOCKER_HUB_ALIASES = {"docker.io", "index.docker.io", "registry-1.docker.io"}
DOCKER_HUB_API = "https://registry-1.docker.io"


@dataclass(frozen=True, slots=True)
class RegistryCredentials:
    """
    Already-resolved registry login. `secret` stays a SecretStr so that reprs,
    logs and reports only ever show a mask.
    """

    registry: str
    username: str
    secret: SecretStr


@dataclass(frozen=True, slots=True)
class RegistryLocation:
    """
    Where images of this project live: `{registry}/{namespace}/{image}`.
    """

    registry: str
    namespace: str = ""
    api_url: str | None = None

    @property
    def is_docker_hub(self) -> bool:
        return self.registry in DOCKER_HUB_ALIASES

    @property
    def api_base(self) -> str:
        if self.api_url:
            return self.api_url
        if self.is_docker_hub:
            return DOCKER_HUB_API
        return f"https://{self.registry}"

    def repository(self, image: str) -> str:
        """Path used by the HTTP API (no registry host)."""
        ns = self.namespace.strip("/")
        if ns:
            return f"{ns}/{image}"
        if self.is_docker_hub:
            return f"library/{image}"
        return image

    def reference(self, image: str, tag: str) -> str:
        return f"{self.registry}/{self.repository(image)}:{tag}"


@dataclass(frozen=True, slots=True)
class PublishedArtifact:
    """
    An image confirmed retrievable from the registry.

    `registry_ref` is identifier-qualified and never changes meaning;
    `alias_ref` (`:latest`) may later point at a newer publish.
    """

    service: str
    identifier: str
    registry_ref: str
    alias_ref: str
    digest: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "identifier": self.identifier,
            "registry_ref": self.registry_ref,
            "alias_ref": self.alias_ref,
            "digest": self.digest,
        }
