from __future__ import annotations

import json
from pathlib import Path

import pytest
from release_orchestrator.core import ConfigError
from release_orchestrator.project import load_project, resolve_config_dir


def _rewrite(cfg: Path, **changes) -> None:
    path = cfg / "release.json"
    raw = json.loads(path.read_text())
    raw.update(changes)
    path.write_text(json.dumps(raw))


def test_load_project_resolves_paths(project_dir: Path) -> None:
    loaded = load_project(project_dir)

    assert loaded.project.project == "webapp"
    assert [s.name for s in loaded.project.services] == ["api", "web"]

    api = loaded.project.service_map["api"]
    assert loaded.context_dir(api) == (project_dir / "services" / "api").resolve()
    assert loaded.dockerfile_path(api).name == "Dockerfile"
    assert loaded.template_path == project_dir / "compose.template.yml"

    statics = loaded.static_files()
    assert [(f.remote_name, f.local_path.name) for f in statics] == [
        ("proxy/default.conf", "default.conf")
    ]


def test_select_services(project_dir: Path) -> None:
    project = load_project(project_dir).project
    assert [s.name for s in project.select(None)] == ["api", "web"]
    assert [s.name for s in project.select(["web"])] == ["web"]
    with pytest.raises(ConfigError, match="Unknown service"):
        project.select(["worker"])


def test_schema_rejects_unknown_keys(project_dir: Path) -> None:
    _rewrite(project_dir, registry="docker.io")
    with pytest.raises(ConfigError, match="failed validation"):
        load_project(project_dir)


def test_duplicate_service_names_rejected(project_dir: Path) -> None:
    svc = {"name": "api", "context": "services/api", "image": "webapp-api"}
    _rewrite(project_dir, services=[svc, dict(svc, image="webapp-api2")])
    with pytest.raises(ConfigError, match="Duplicate service"):
        load_project(project_dir)


def test_static_files_must_stay_inside_workdir(project_dir: Path) -> None:
    _rewrite(project_dir, static_files=["../etc/passwd"])
    with pytest.raises(ConfigError, match="relative path"):
        load_project(project_dir)


def test_missing_template_is_config_error(project_dir: Path) -> None:
    (project_dir / "compose.template.yml").unlink()
    with pytest.raises(ConfigError, match="compose template"):
        load_project(project_dir)


def test_missing_static_file_surfaces_on_use(project_dir: Path) -> None:
    (project_dir / "proxy" / "default.conf").unlink()
    loaded = load_project(project_dir)
    with pytest.raises(ConfigError, match="static file"):
        loaded.static_files()


def test_resolve_config_dir_from_env(
    project_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("RELEASE_CONFIG_DIR", str(project_dir))
    assert resolve_config_dir() == project_dir.resolve()

    monkeypatch.setenv("RELEASE_CONFIG_DIR", str(tmp_path / "nope"))
    with pytest.raises(ConfigError, match="RELEASE_CONFIG_DIR"):
        resolve_config_dir()


def test_resolve_config_dir_explicit_must_hold_release_json(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="--config-dir"):
        resolve_config_dir(tmp_path)
