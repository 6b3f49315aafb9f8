from __future__ import annotations

import re
from dataclasses import dataclass, field

import httpx
import structlog
from release_orchestrator.core import AuthError, RegistryTransferError

from .models import RegistryCredentials

_RETRYABLE_STATUSES: set[int] = {408, 429, 500, 502, 503, 504}

MANIFEST_ACCEPT = ", ".join(
    (
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    )
)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')

log = structlog.get_logger(__name__)


class ManifestNotFound(RegistryTransferError):
    """Registry answered 404 for a reference that was just pushed."""


def make_http_client(
    *,
    timeout: float = 30.0,
    user_agent: str = "release-orchestrator/0.1",
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    t = httpx.Timeout(connect=min(5.0, timeout), read=timeout, write=timeout, pool=5.0)
    return httpx.Client(
        timeout=t,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
        transport=transport,
    )


def is_retryable_status(code: int) -> bool:
    return code in _RETRYABLE_STATUSES


def parse_challenge(header: str) -> tuple[str, dict[str, str]]:
    """
    `Bearer realm="https://auth.docker.io/token",service="registry.docker.io"`
    -> ("bearer", {"realm": ..., "service": ...})
    """
    scheme, _, rest = header.strip().partition(" ")
    return scheme.lower(), dict(_CHALLENGE_PARAM.findall(rest))


@dataclass(frozen=True, slots=True)
class ManifestInfo:
    repository: str
    reference: str
    digest: str | None
    media_type: str | None


@dataclass(slots=True)
class RegistryClient:
    """
    Minimal Docker Registry HTTP API v2 client: just enough to prove that a
    pushed reference is retrievable. Handles Basic and Bearer-token challenges.
    """

    api_base: str
    client: httpx.Client
    credentials: RegistryCredentials | None = None
    # bearer tokens are scoped per repository
    _tokens: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def _auth_header(self, repository: str) -> dict[str, str]:
        token = self._tokens.get(repository)
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _basic(self) -> httpx.BasicAuth | None:
        if self.credentials is None or not self.credentials.username:
            return None
        return httpx.BasicAuth(
            self.credentials.username, self.credentials.secret.get_secret_value()
        )

    def _fetch_token(self, challenge: dict[str, str], repository: str) -> str:
        realm = challenge.get("realm")
        if not realm:
            raise AuthError("Registry sent a Bearer challenge without a realm")

        params = {"scope": challenge.get("scope") or f"repository:{repository}:pull"}
        if challenge.get("service"):
            params["service"] = challenge["service"]

        try:
            resp = self.client.get(realm, params=params, auth=self._basic())
        except httpx.TransportError as e:
            raise RegistryTransferError(f"Token request to {realm} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthError(f"Registry token service rejected credentials ({resp.status_code})")
        if resp.status_code != 200:
            raise RegistryTransferError(f"Token request to {realm} returned HTTP {resp.status_code}")

        body = resp.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise AuthError("Registry token service returned no token")
        return str(token)

    def _head(self, url: str, repository: str, *, basic: bool = False) -> httpx.Response:
        headers = {"Accept": MANIFEST_ACCEPT, **self._auth_header(repository)}
        try:
            return self.client.head(url, headers=headers, auth=self._basic() if basic else None)
        except httpx.TransportError as e:
            raise RegistryTransferError(f"HEAD {url} failed: {e}") from e

    def manifest(self, repository: str, reference: str) -> ManifestInfo:
        url = f"{self.api_base.rstrip('/')}/v2/{repository}/manifests/{reference}"
        resp = self._head(url, repository)

        if resp.status_code == 401:
            scheme, challenge = parse_challenge(resp.headers.get("WWW-Authenticate", ""))
            if scheme == "bearer":
                self._tokens[repository] = self._fetch_token(challenge, repository)
                resp = self._head(url, repository)
            else:
                resp = self._head(url, repository, basic=True)

        code = resp.status_code
        log.debug("registry.manifest", repository=repository, reference=reference, status=code)
        if code == 200:
            return ManifestInfo(
                repository=repository,
                reference=reference,
                digest=resp.headers.get("Docker-Content-Digest"),
                media_type=resp.headers.get("Content-Type"),
            )
        if code in (401, 403):
            raise AuthError(f"Registry denied manifest access for {repository}:{reference} ({code})")
        if code == 404:
            raise ManifestNotFound(f"{repository}:{reference} is not retrievable from {self.api_base}")
        if is_retryable_status(code):
            raise RegistryTransferError(f"HTTP {code} for HEAD {url}")
        raise RegistryTransferError(f"Unexpected HTTP {code} for HEAD {url}")
