from __future__ import annotations

from pathlib import Path

import pytest
from release_orchestrator.core import ConfigError, fs, hashing, json, paths, provenance, time
from release_orchestrator.core.errors import stage_error_from_exc


def test_atomic_write_text_replaces_content(tmp_path: Path) -> None:
    p = tmp_path / "d1" / "compose.yml"
    fs.atomic_write_text(p, "services: {}\n")
    assert p.read_text() == "services: {}\n"

    fs.atomic_write_text(p, "updated")
    assert p.read_text() == "updated"
    # no temp files left next to the target
    assert [x.name for x in p.parent.iterdir()] == ["compose.yml"]


def test_require_helpers_raise_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="release.json"):
        fs.require_file(tmp_path / "release.json", label="release.json")
    with pytest.raises(ConfigError):
        fs.require_dir(tmp_path / "missing", label="config directory")
    assert fs.require_dir(tmp_path, label="tmp") == tmp_path


def test_sha256_helpers(tmp_path: Path) -> None:
    abc = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert hashing.sha256_text("abc") == abc

    f = tmp_path / "compose.yml"
    f.write_bytes(b"abc")
    assert hashing.sha256_file(f) == (abc, 3)


def test_json_helpers(tmp_path: Path) -> None:
    obj = {"b": 1, "a": 2, "path": Path("/opt/app")}
    out = tmp_path / "sample.json"
    json.atomic_write_json(out, obj)
    assert json.read_json(out) == {"a": 2, "b": 1, "path": "/opt/app"}

    compact = json.stable_json_dumps({"b": 1, "a": 2}, indent=None)
    assert compact == '{"a":2,"b":1}'


def test_run_layout_paths(tmp_path: Path) -> None:
    layout = paths.RunLayout(runs_root=tmp_path / "_runs", state_root=tmp_path / ".release")
    assert layout.events_jsonl("r1") == tmp_path / "_runs" / "r1" / "events.jsonl"
    assert layout.run_report_json("r1").name == "run_report.json"

    lock = layout.target_lock("deploy@host:22/opt/app")
    assert lock.parent == tmp_path / ".release" / "locks"
    assert "/" not in lock.name and lock.name.endswith(".lock")


def test_stage_error_and_run_id() -> None:
    try:
        raise ValueError("boom")
    except Exception as exc:
        err = stage_error_from_exc(exc)
    assert err.exc_type == "ValueError"
    assert "boom" in err.message
    assert "ValueError" in err.traceback

    rid1, rid2 = provenance.new_run_id(), provenance.new_run_id()
    assert rid1 != rid2 and len(rid1) == 32

    prov = provenance.RunProvenance(run_id=rid1, started_at_utc=time.utc_now_iso()).to_dict()
    assert prov["run_id"] == rid1 and prov["started_at_utc"].endswith("Z")


def test_format_duration() -> None:
    assert time.format_duration_ms(250) == "250 ms"
    assert time.format_duration_ms(1500) == "1.50 s"
