from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

import httpx
import pytest
from pydantic import SecretStr
from release_orchestrator.core import CommandResult
from release_orchestrator.project import LoadedProject, load_project
from release_orchestrator.stages.publish import RegistryCredentials, StaticSecretProvider

SECRET = "s3cr3t-registry-token"

TEMPLATE = """\
name: webapp
services:
  api:
    build:
      context: ./services/api
    restart: unless-stopped
  web:
    build:
      context: ./services/web
    depends_on:
      - api
  proxy:
    image: nginx:1.27-alpine
    volumes:
      - ./proxy/default.conf:/etc/nginx/conf.d/default.conf:ro
"""


@dataclass
class _Rule:
    needles: tuple[str, ...]
    result: CommandResult
    times: int | None
    effect: Callable[[tuple[str, ...]], None] | None


class FakeRunner:
    """
    Scripted CommandRunner. Rules match when every needle is a substring of the
    joined argv; the first live rule wins, anything unmatched succeeds.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.inputs: list[str | None] = []
        self._rules: list[_Rule] = []
        self._lock = threading.Lock()

    def on(
        self,
        *needles: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        times: int | None = None,
        effect: Callable[[tuple[str, ...]], None] | None = None,
    ) -> "FakeRunner":
        res = CommandResult(
            args=(), returncode=returncode, stdout=stdout, stderr=stderr, timed_out=timed_out
        )
        self._rules.append(_Rule(needles=needles, result=res, times=times, effect=effect))
        return self

    def __call__(self, args: Sequence[str], *, timeout: float, cwd=None, input_text=None, env=None):
        argv = tuple(str(a) for a in args)
        joined = " ".join(argv)
        with self._lock:
            self.calls.append(argv)
            self.inputs.append(input_text)
            rule = None
            for r in self._rules:
                if r.times == 0:
                    continue
                if all(n in joined for n in r.needles):
                    rule = r
                    if r.times is not None:
                        r.times -= 1
                    break
        if rule is None:
            return CommandResult(args=argv, returncode=0)
        if rule.effect is not None:
            rule.effect(argv)
        return CommandResult(
            args=argv,
            returncode=rule.result.returncode,
            stdout=rule.result.stdout,
            stderr=rule.result.stderr,
            timed_out=rule.result.timed_out,
        )

    def matching(self, *needles: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if all(n in " ".join(c) for n in needles)]

    def remote_commands(self) -> list[str]:
        """The command strings sent over ssh, in order."""
        return [c[-1] for c in self.calls if c and c[0] == "ssh"]


class FakeRegistry:
    """
    httpx handler for the registry API. Every manifest HEAD answers 200 unless
    the reference is listed in `missing`.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.missing: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        ref = request.url.path.rsplit("/", 1)[-1]
        if ref in self.missing:
            return httpx.Response(404)
        return httpx.Response(
            200,
            headers={
                "Docker-Content-Digest": f"sha256:{'0' * 56}{ref[:8]:0>8}",
                "Content-Type": "application/vnd.oci.image.index.v1+json",
            },
        )

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


def write_project(root: Path, *, services: Sequence[str] = ("api", "web")) -> Path:
    cfg = root / "config"
    cfg.mkdir(parents=True, exist_ok=True)
    (cfg / "proxy").mkdir(exist_ok=True)
    (cfg / "proxy" / "default.conf").write_text("server { listen 80; }\n", encoding="utf-8")
    (cfg / "compose.template.yml").write_text(TEMPLATE, encoding="utf-8")

    entries = []
    for name in services:
        ctx = cfg / "services" / name
        ctx.mkdir(parents=True, exist_ok=True)
        (ctx / "Dockerfile").write_text("FROM alpine:3.20\n", encoding="utf-8")
        entries.append({"name": name, "context": f"services/{name}", "image": f"webapp-{name}"})

    project = {
        "spec_version": 1,
        "project": "webapp",
        "static_files": ["proxy/default.conf"],
        "services": entries,
    }
    (cfg / "release.json").write_text(json.dumps(project, indent=2), encoding="utf-8")
    return cfg


def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    return write_project(tmp_path)


@pytest.fixture
def loaded(project_dir: Path) -> LoadedProject:
    return load_project(project_dir)


@pytest.fixture
def credentials() -> RegistryCredentials:
    return RegistryCredentials(
        registry="registry.example.com", username="ci", secret=SecretStr(SECRET)
    )


@pytest.fixture
def secrets(credentials: RegistryCredentials) -> StaticSecretProvider:
    return StaticSecretProvider(credentials)


@pytest.fixture
def sleeper() -> Callable[[float], None]:
    return no_sleep


@pytest.fixture
def project_factory() -> Callable[..., Path]:
    return write_project
