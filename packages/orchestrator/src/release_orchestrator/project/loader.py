from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import jsonschema
from pydantic import TypeAdapter, ValidationError
from release_orchestrator.core import ConfigError, read_json, require_dir, require_file

from .models import ReleaseProject, ServiceSpec

PROJECT_FILE = "release.json"


def resolve_config_dir(explicit: Path | None = None) -> Path:
    """
    Resolve the directory containing release.json.

    Priority:
      1) explicit argument (--config-dir or RELEASE_CONFIG_DIR via Settings)
      2) env RELEASE_CONFIG_DIR
      3) ./config or ./packages/orchestrator/config
      4) discover ./config by walking upwards from this module (dev checkout)
    """

    def _is_config_dir(p: Path) -> bool:
        return (p / PROJECT_FILE).is_file()

    if explicit is not None:
        p = Path(explicit).expanduser().resolve()
        if _is_config_dir(p):
            return p
        raise ConfigError(f"--config-dir does not look like a config directory: {p}")

    env = os.environ.get("RELEASE_CONFIG_DIR")
    if env:
        p = Path(env).expanduser().resolve()
        if _is_config_dir(p):
            return p
        raise ConfigError(f"RELEASE_CONFIG_DIR does not look like a config directory: {p}")

    for cand in (Path.cwd() / "config", Path.cwd() / "packages" / "orchestrator" / "config"):
        if _is_config_dir(cand):
            return cand.resolve()

    here = Path(__file__).resolve()
    for parent in here.parents:
        cand = parent / "config"
        if _is_config_dir(cand):
            return cand.resolve()

    raise ConfigError(
        "Could not resolve release config directory. "
        "Pass --config-dir or set RELEASE_CONFIG_DIR."
    )


def schema_for_project() -> dict:
    return TypeAdapter(ReleaseProject).json_schema()


@dataclass(frozen=True, slots=True)
class StaticFile:
    local_path: Path
    remote_name: str


@dataclass(frozen=True, slots=True)
class LoadedProject:
    """
    A validated release.json plus the directory it was read from; every relative
    path in the project resolves against `config_dir`.
    """

    config_dir: Path
    project: ReleaseProject

    @property
    def source_root(self) -> Path:
        return (self.config_dir / self.project.source_root).resolve()

    @property
    def template_path(self) -> Path:
        return self.config_dir / self.project.compose_template

    def context_dir(self, service: ServiceSpec) -> Path:
        return (self.source_root / service.context).resolve()

    def dockerfile_path(self, service: ServiceSpec) -> Path:
        return self.context_dir(service) / service.dockerfile

    def static_files(self) -> list[StaticFile]:
        return [
            StaticFile(
                local_path=require_file(self.config_dir / rel, label="static file"),
                remote_name=rel,
            )
            for rel in self.project.static_files
        ]


def load_project(config_dir: Path | None = None) -> LoadedProject:
    cfg = require_dir(resolve_config_dir(config_dir), label="config directory")
    path = require_file(cfg / PROJECT_FILE, label=PROJECT_FILE)

    try:
        raw = read_json(path)
    except ValueError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e

    try:
        jsonschema.validate(instance=raw, schema=schema_for_project())
        project = ReleaseProject.model_validate(raw)
    except (jsonschema.ValidationError, ValidationError) as e:
        raise ConfigError(f"{path} failed validation: {e}") from e

    require_file(cfg / project.compose_template, label="compose template")
    return LoadedProject(config_dir=cfg, project=project)
