from .http import ManifestInfo, ManifestNotFound, RegistryClient, make_http_client
from .models import PublishedArtifact, RegistryCredentials, RegistryLocation
from .publisher import RegistryPublisher
from .secrets import (
    FileSecretProvider,
    SecretProvider,
    StaticSecretProvider,
    provider_from_settings,
)
from .stage import stage_publish, stage_resolve

__all__ = [
    "FileSecretProvider",
    "ManifestInfo",
    "ManifestNotFound",
    "PublishedArtifact",
    "RegistryClient",
    "RegistryCredentials",
    "RegistryLocation",
    "RegistryPublisher",
    "SecretProvider",
    "StaticSecretProvider",
    "make_http_client",
    "provider_from_settings",
    "stage_publish",
    "stage_resolve",
]
