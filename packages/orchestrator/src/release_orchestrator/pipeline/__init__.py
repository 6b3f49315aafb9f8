from .context import RunContext, RunFile
from .events import EventSink, EventType, RunEvent
from .report import Failure, RunReport
from .runner import PipelineRunner, RunnerConfig
from .stage import FunctionStage, Stage, StageFn, StageResult, run_stage

__all__ = [
    "EventSink",
    "EventType",
    "Failure",
    "FunctionStage",
    "PipelineRunner",
    "RunContext",
    "RunEvent",
    "RunFile",
    "RunReport",
    "RunnerConfig",
    "Stage",
    "StageFn",
    "StageResult",
    "run_stage",
]
