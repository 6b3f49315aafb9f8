from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from release_orchestrator.core import atomic_write_json

from .stage import StageResult


@dataclass(frozen=True, slots=True)
class Failure:
    """
    Terminal failure of a run: which stage, which error class, what it said.
    """

    stage: str
    cause: str
    message: str

    def __str__(self) -> str:
        return f"Failed(stage={self.stage}, cause={self.cause})"


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str  # "success" | "failed"
    duration_ms: int

    stages: list[StageResult] = field(default_factory=list)
    failure: Optional[Failure] = None
    events_jsonl: Optional[str] = None
    report_json: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def stage(self, stage_id: str) -> StageResult | None:
        for s in self.stages:
            if s.stage == stage_id:
                return s
        return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())


def first_failure(stage_results: list[StageResult]) -> Failure | None:
    for s in stage_results:
        if s.status == "failed":
            err = s.error
            return Failure(
                stage=s.stage,
                cause=err.exc_type if err else "UnknownError",
                message=err.message if err else "",
            )
    return None


def build_run_report(
    *,
    run_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    stage_results: list[StageResult],
    events_jsonl: str | None,
    failure: Failure | None = None,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    failure = failure or first_failure(stage_results)
    return RunReport(
        run_id=run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status="failed" if failure is not None else "success",
        duration_ms=duration_ms,
        stages=stage_results,
        failure=failure,
        events_jsonl=events_jsonl,
        meta=meta or {},
    )
