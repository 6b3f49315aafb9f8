from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from release_orchestrator.core import (
    ReleaseError,
    StageError,
    format_duration_ms,
    monotonic_ms,
    utc_now_iso,
)

from .context import RunContext, RunFile
from .events import EventType

StageFn = Callable[[RunContext], dict[str, Any] | None]


@dataclass(slots=True)
class FunctionStage:
    """
    Adapter that turns a plain function into a Stage.
    """

    stage_id: str
    fn: StageFn

    def run(self, ctx: RunContext) -> dict[str, Any] | None:
        return self.fn(ctx)


@dataclass(slots=True)
class StageResult:
    stage: str
    status: str  # "success" | "failed" | "skipped"
    started_at_utc: str
    finished_at_utc: str
    duration_ms: int

    outputs: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    artifacts: list[RunFile] = field(default_factory=list)
    error: Optional[StageError] = None


class Stage(Protocol):
    stage_id: str

    def run(self, ctx: RunContext) -> dict[str, Any] | None: ...


def skipped_result(stage_id: str, *, reason: str) -> StageResult:
    now = utc_now_iso()
    return StageResult(
        stage=stage_id,
        status="skipped",
        started_at_utc=now,
        finished_at_utc=now,
        duration_ms=0,
        warnings=[reason],
    )


def run_stage(
    *,
    ctx: RunContext,
    stage: Stage,
    index: int | None = None,
    total: int | None = None,
) -> StageResult:
    """
    Run one stage and fold its outcome into a StageResult. Exceptions never
    escape: they become `status="failed"` with a StageError record.

    A stage may return reserved keys alongside its outputs:
      _warnings  list[str]
      _metrics   dict
      _artifacts list[RunFile]
    """
    stage_id = stage.stage_id
    log = ctx.stage_logger(stage_id)

    t0 = monotonic_ms()
    started_at = utc_now_iso()
    position = f"{index}/{total}" if index is not None and total is not None else None

    ctx.emit(EventType.STAGE_START, stage=stage_id)
    log.info("Stage starting", position=position)

    warnings: list[str] = []
    artifacts: list[RunFile] = []
    metrics: dict[str, Any] = {}

    try:
        out = stage.run(ctx) or {}
        if not isinstance(out, dict):
            raise TypeError(
                f"Stage {stage_id} returned {type(out).__name__}, expected dict or None"
            )

        w = out.pop("_warnings", None)
        if isinstance(w, list):
            warnings.extend(str(x) for x in w)

        m = out.pop("_metrics", None)
        if isinstance(m, dict):
            metrics.update(m)

        a = out.pop("_artifacts", None)
        if isinstance(a, list):
            artifacts.extend(a)

        for msg in warnings:
            ctx.emit(EventType.STAGE_WARN, stage=stage_id, message=msg)
            log.warning(msg)

        if metrics:
            ctx.emit(EventType.STAGE_METRICS, stage=stage_id, metrics=metrics)

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(EventType.STAGE_SUCCESS, stage=stage_id, duration_ms=duration)
        log.info(
            "Stage succeeded",
            position=position,
            duration=format_duration_ms(duration),
            warnings=len(warnings),
            outputs=sorted(out.keys()),
            artifacts=len(artifacts),
        )

        return StageResult(
            stage=stage_id,
            status="success",
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            outputs=out,
            metrics=metrics,
            warnings=warnings,
            artifacts=artifacts,
        )

    except Exception as e:
        tb = traceback.format_exc()
        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        ctx.emit(
            EventType.STAGE_FAILED,
            stage=stage_id,
            duration_ms=duration,
            exc_type=type(e).__name__,
            message=str(e),
        )
        log.error(
            "Stage failed",
            position=position,
            duration=format_duration_ms(duration),
            exc_type=type(e).__name__,
            error=str(e),
        )
        if not isinstance(e, ReleaseError):
            # Anything outside the release taxonomy is a bug; keep the traceback.
            log.exception("Stage exception")

        return StageResult(
            stage=stage_id,
            status="failed",
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            metrics=metrics,
            warnings=warnings,
            artifacts=artifacts,
            error=StageError(exc_type=type(e).__name__, message=str(e), traceback=tb),
        )
