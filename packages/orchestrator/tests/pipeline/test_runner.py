from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest
from release_orchestrator.core import BuildError, CancelToken, get_logger
from release_orchestrator.pipeline import PipelineRunner, RunnerConfig
from release_orchestrator.pipeline.parallel import fan_out


def _runner(*stages) -> PipelineRunner:
    return PipelineRunner(
        stages=[PipelineRunner.fn(sid, fn) for sid, fn in stages],
        cfg=RunnerConfig(stop_on_failure=True),
        logger=get_logger("test"),
    )


def test_runner_hands_off_between_stages_and_writes_report(tmp_path: Path) -> None:
    def first(ctx):
        ctx.handoff["identifier"] = "abc123"
        return {"identifier": "abc123", "_metrics": {"n": 1}, "_warnings": ["heads up"]}

    def second(ctx):
        return {"seen": ctx.require("identifier")}

    report, ctx = _runner(("first", first), ("second", second)).run(
        run_root=tmp_path, run_id="r1", meta={"revision": "abc123"}
    )

    assert report.ok
    assert [s.status for s in report.stages] == ["success", "success"]
    assert report.stage("second").outputs == {"seen": "abc123"}
    assert report.stage("first").metrics == {"n": 1}
    assert report.stage("first").warnings == ["heads up"]

    on_disk = json.loads((tmp_path / "r1" / "run_report.json").read_text())
    assert on_disk["status"] == "success"
    assert on_disk["meta"]["revision"] == "abc123"
    assert report.events_jsonl == str(tmp_path / "r1" / "events.jsonl")

    types = [e.type for e in ctx.events.read()]
    assert types[0] == "run.env"
    assert "stage.start" in types and types[-1] == "run.finish"


def test_runner_stops_on_first_failure(tmp_path: Path) -> None:
    ran: list[str] = []

    def ok(ctx):
        ran.append("tag")

    def boom(ctx):
        ran.append("build")
        raise BuildError("api", "COPY failed: no such file")

    def never(ctx):
        ran.append("publish")

    report, _ = _runner(("tag", ok), ("build", boom), ("publish", never)).run(
        run_root=tmp_path, run_id="r2"
    )

    assert ran == ["tag", "build"]
    assert not report.ok
    assert [s.status for s in report.stages] == ["success", "failed", "skipped"]
    assert report.failure is not None
    assert (report.failure.stage, report.failure.cause) == ("build", "BuildError")
    assert str(report.failure) == "Failed(stage=build, cause=BuildError)"
    assert "COPY failed" in report.failure.message


def test_runner_honours_cancellation_between_stages(tmp_path: Path) -> None:
    token = CancelToken()
    ran: list[str] = []

    def first(ctx):
        ran.append("first")
        token.cancel("operator")

    def second(ctx):
        ran.append("second")

    report, ctx = _runner(("first", first), ("second", second)).run(
        run_root=tmp_path, run_id="r3", cancel=token
    )

    assert ran == ["first"]
    assert [s.status for s in report.stages] == ["success", "skipped"]
    assert report.failure is not None
    assert (report.failure.stage, report.failure.cause) == ("second", "Cancelled")
    assert "run.cancelled" in [e.type for e in ctx.events.read()]


def test_runner_rejects_duplicate_stage_ids() -> None:
    with pytest.raises(ValueError, match="Duplicate"):
        _runner(("tag", lambda ctx: None), ("tag", lambda ctx: None))


def test_stage_returning_non_dict_fails(tmp_path: Path) -> None:
    report, _ = _runner(("bad", lambda ctx: ["not", "a", "dict"])).run(
        run_root=tmp_path, run_id="r4"
    )
    assert report.failure is not None
    assert report.failure.cause == "TypeError"


def test_fan_out_preserves_input_order() -> None:
    def slow_first(x: int) -> int:
        if x == 0:
            time.sleep(0.05)
        return x * 10

    assert fan_out([0, 1, 2, 3], slow_first, max_workers=4) == [0, 10, 20, 30]
    assert fan_out([], slow_first, max_workers=4) == []


def test_fan_out_waits_for_in_flight_work_before_raising() -> None:
    finished = threading.Event()

    def work(x: str) -> str:
        if x == "api":
            raise BuildError("api", "exit 1")
        time.sleep(0.1)
        finished.set()
        return x

    with pytest.raises(BuildError):
        fan_out(["web", "api"], work, max_workers=2)
    assert finished.is_set()
