from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable

import httpx
import structlog
from release_orchestrator.core import (
    AuthError,
    CommandResult,
    CommandRunner,
    RegistryTransferError,
    SubprocessRunner,
    TransferError,
    call_with_retries,
)
from release_orchestrator.stages.build import LATEST, BuildArtifact

from .http import ManifestInfo, RegistryClient, make_http_client
from .models import PublishedArtifact, RegistryCredentials, RegistryLocation

_AUTH_MARKERS = (
    "unauthorized",
    "denied",
    "authentication required",
    "incorrect username or password",
    "insufficient_scope",
)

log = structlog.get_logger(__name__)


def _is_auth_failure(res: CommandResult) -> bool:
    text = res.output.lower()
    return any(m in text for m in _AUTH_MARKERS)


def _image_of(local_ref: str) -> str:
    return local_ref.rsplit(":", 1)[0]


@dataclass(slots=True)
class RegistryPublisher:
    """
    Pushes built images under `:<identifier>` and `:latest`, then proves the
    identifier reference is retrievable before reporting success.

    Credential rejections fail immediately. Network-classified failures are
    retried with bounded exponential backoff; a push of identical content
    under the same tag is a no-op on the registry side, so retries are safe.
    """

    location: RegistryLocation
    runner: CommandRunner = field(default_factory=SubprocessRunner)
    http: httpx.Client | None = None
    engine: str = "docker"
    push_timeout_s: float = 900.0
    login_timeout_s: float = 60.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_cap: float = 8.0
    sleep: Callable[[float], None] | None = None

    _logged_in: set[str] = field(default_factory=set, init=False, repr=False)
    _login_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _clients: dict[str, RegistryClient] = field(default_factory=dict, init=False, repr=False)

    # -- external calls -------------------------------------------------

    def _retry(self, fn, *, what: str, **fields):
        return call_with_retries(
            fn,
            what=what,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            backoff_cap=self.backoff_cap,
            sleep=self.sleep,
            **fields,
        )

    def login(self, credentials: RegistryCredentials) -> None:
        key = f"{credentials.registry}|{credentials.username}"
        with self._login_lock:
            if key in self._logged_in:
                return

            def _once() -> None:
                res = self.runner(
                    [
                        self.engine,
                        "login",
                        credentials.registry,
                        "--username",
                        credentials.username,
                        "--password-stdin",
                    ],
                    timeout=self.login_timeout_s,
                    input_text=credentials.secret.get_secret_value(),
                )
                if res.ok:
                    return
                if not res.timed_out and _is_auth_failure(res):
                    raise AuthError(
                        f"Registry {credentials.registry} rejected credentials for {credentials.username}"
                    )
                raise RegistryTransferError(
                    f"docker login {credentials.registry} failed: {res.output or res.returncode}"
                )

            self._retry(_once, what="registry.login", registry=credentials.registry)
            self._logged_in.add(key)
            log.info("Registry login ok", registry=credentials.registry, username=credentials.username)

    def _tag(self, source: str, target: str) -> None:
        res = self.runner([self.engine, "tag", source, target], timeout=60.0)
        if not res.ok:
            raise TransferError(f"docker tag {source} {target} failed: {res.output}")

    def _push(self, ref: str) -> None:
        def _once() -> None:
            res = self.runner([self.engine, "push", ref], timeout=self.push_timeout_s)
            if res.ok:
                return
            if not res.timed_out and _is_auth_failure(res):
                raise AuthError(f"Registry refused push of {ref}: {res.output}")
            if res.timed_out:
                raise RegistryTransferError(f"docker push {ref} timed out after {self.push_timeout_s:g}s")
            raise RegistryTransferError(f"docker push {ref} failed: {res.output or res.returncode}")

        self._retry(_once, what="registry.push", ref=ref)

    def _registry_client(self, credentials: RegistryCredentials | None) -> RegistryClient:
        key = credentials.username if credentials is not None else ""
        with self._login_lock:
            rc = self._clients.get(key)
            if rc is None:
                if self.http is None:
                    self.http = make_http_client()
                rc = RegistryClient(
                    api_base=self.location.api_base, client=self.http, credentials=credentials
                )
                self._clients[key] = rc
            return rc

    def verify(
        self, image: str, identifier: str, credentials: RegistryCredentials | None
    ) -> ManifestInfo:
        repo = self.location.repository(image)
        rc = self._registry_client(credentials)
        return self._retry(
            lambda: rc.manifest(repo, identifier),
            what="registry.verify",
            repository=repo,
            reference=identifier,
        )

    def close(self) -> None:
        if self.http is not None:
            self.http.close()

    # -- contract ----------------------------------------------------------

    def publish(
        self, artifact: BuildArtifact, credentials: RegistryCredentials
    ) -> PublishedArtifact:
        image = _image_of(artifact.local_ref)
        registry_ref = self.location.reference(image, artifact.identifier)
        alias_ref = self.location.reference(image, LATEST)
        plog = log.bind(service=artifact.service, ref=registry_ref)

        self.login(credentials)

        self._tag(artifact.local_ref, registry_ref)
        self._tag(artifact.local_ref, alias_ref)

        plog.info("Pushing image")
        self._push(registry_ref)
        self._push(alias_ref)

        info = self.verify(image, artifact.identifier, credentials)
        plog.info("Image verified in registry", digest=info.digest)

        return PublishedArtifact(
            service=artifact.service,
            identifier=artifact.identifier,
            registry_ref=registry_ref,
            alias_ref=alias_ref,
            digest=info.digest,
        )

    def resolve(
        self,
        service: str,
        image: str,
        identifier: str,
        credentials: RegistryCredentials | None,
    ) -> PublishedArtifact:
        """
        PublishedArtifact for an identifier pushed by an earlier run, after
        checking the registry still serves it.
        """
        info = self.verify(image, identifier, credentials)
        return PublishedArtifact(
            service=service,
            identifier=identifier,
            registry_ref=self.location.reference(image, identifier),
            alias_ref=self.location.reference(image, LATEST),
            digest=info.digest,
        )
