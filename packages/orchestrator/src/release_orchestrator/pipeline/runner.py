from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from release_orchestrator.core import (
    CancelToken,
    ILogger,
    RunLayout,
    configure_logging,
    format_duration_ms,
    get_logger,
    monotonic_ms,
    new_run_id,
    utc_now_iso,
)

from .context import RunContext
from .events import EventSink, EventType, make_event
from .report import Failure, RunReport, build_run_report
from .stage import FunctionStage, Stage, StageFn, StageResult, run_stage, skipped_result


@dataclass(slots=True)
class RunnerConfig:
    stop_on_failure: bool = True


def default_logger() -> ILogger:
    """
    Provide a structlog BoundLogger that satisfies ILogger.
    """
    configure_logging()
    return get_logger("pipeline")


class PipelineRunner:
    """
    Runs stages strictly in order against one RunContext and writes
    events.jsonl and run_report.json under `{run_root}/{run_id}/`.
    """

    def __init__(
        self,
        *,
        stages: Sequence[Stage],
        cfg: RunnerConfig | None = None,
        logger: ILogger | None = None,
    ) -> None:
        self.stages = list(stages)
        self.cfg = cfg or RunnerConfig()
        self.logger: ILogger = logger or default_logger()

        ids = [s.stage_id for s in self.stages]
        if len(ids) != len(set(ids)):
            dupes = sorted({x for x in ids if ids.count(x) > 1})
            raise ValueError(f"Duplicate stage_id(s): {dupes}")

    @staticmethod
    def fn(stage_id: str, fn: StageFn) -> Stage:
        return FunctionStage(stage_id=stage_id, fn=fn)

    def run(
        self,
        *,
        run_root: Path,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> tuple[RunReport, RunContext]:
        meta = meta or {}
        rid = run_id or new_run_id()
        layout = RunLayout(runs_root=Path(run_root))
        run_dir = layout.run_dir(rid)
        run_dir.mkdir(parents=True, exist_ok=True)

        events_path = layout.events_jsonl(rid)
        ctx = RunContext(
            run_id=rid,
            run_root=run_dir,
            logger=self.logger,
            events=EventSink(events_path),
            cancel=cancel or CancelToken(),
            meta=meta,
        )

        started_at = utc_now_iso()
        t0 = monotonic_ms()

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            stages=[s.stage_id for s in self.stages],
            run_root=str(run_dir),
        )
        ctx.events.emit(make_event(event_type=EventType.RUN_START, run_id=rid, **meta))

        results: list[StageResult] = []
        failure: Failure | None = None
        halted_by: str | None = None

        total = len(self.stages)
        for idx, st in enumerate(self.stages, start=1):
            if halted_by is not None:
                results.append(skipped_result(st.stage_id, reason=halted_by))
                ctx.emit(EventType.STAGE_SKIPPED, stage=st.stage_id, reason=halted_by)
                continue

            if ctx.cancel.cancelled:
                reason = ctx.cancel.reason or "cancelled"
                failure = Failure(stage=st.stage_id, cause="Cancelled", message=reason)
                halted_by = f"cancelled: {reason}"
                self.logger.warning("Run cancelled", before_stage=st.stage_id, reason=reason)
                ctx.emit(EventType.RUN_CANCELLED, stage=st.stage_id, reason=reason)
                results.append(skipped_result(st.stage_id, reason=halted_by))
                continue

            res = run_stage(ctx=ctx, stage=st, index=idx, total=total)
            results.append(res)

            if res.status == "failed" and self.cfg.stop_on_failure:
                self.logger.error("Stopping on first failure", stage=st.stage_id)
                halted_by = f"halted after {st.stage_id} failed"

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        report = build_run_report(
            run_id=rid,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            stage_results=results,
            events_jsonl=str(events_path),
            failure=failure,
            meta=meta,
        )

        report_json = layout.run_report_json(rid)
        report.report_json = str(report_json)
        report.write_json(report_json)

        ctx.events.emit(
            make_event(
                event_type=EventType.RUN_FINISH,
                run_id=rid,
                status=report.status,
                duration_ms=duration,
                report_json=str(report_json),
            )
        )

        self.logger.info(
            "Run complete",
            duration=format_duration_ms(duration),
            report=str(report_json),
            status=report.status,
        )
        return report, ctx
