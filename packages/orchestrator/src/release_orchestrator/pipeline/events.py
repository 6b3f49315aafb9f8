from __future__ import annotations

import json
import os
import socket
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from release_orchestrator.core import utc_now_iso


class EventType(str, Enum):
    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_CANCELLED = "run.cancelled"
    RUN_FINISH = "run.finish"

    STAGE_START = "stage.start"
    STAGE_WARN = "stage.warn"
    STAGE_METRICS = "stage.metrics"
    STAGE_SUCCESS = "stage.success"
    STAGE_FAILED = "stage.failed"
    STAGE_SKIPPED = "stage.skipped"

    ARTIFACT_WRITTEN = "artifact.written"

    TAG_RESOLVED = "tag.resolved"

    BUILD_PLAN = "build.plan"
    BUILD_SERVICE_START = "build.service.start"
    BUILD_SERVICE_FINISH = "build.service.finish"

    PUBLISH_LOGIN = "publish.login"
    PUBLISH_SERVICE_START = "publish.service.start"
    PUBLISH_SERVICE_VERIFIED = "publish.service.verified"

    DESCRIPTOR_RENDERED = "deploy.descriptor"
    DEPLOY_LOCK_WAIT = "deploy.lock.wait"
    DEPLOY_STEP_FINISH = "deploy.step.finish"
    DEPLOY_FINISH = "deploy.finish"


@dataclass(frozen=True, slots=True)
class RunEvent:
    """One line of events.jsonl."""

    type: str
    ts_utc: str
    run_id: str
    stage: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_line(cls, line: str) -> RunEvent:
        return cls(**json.loads(line))


class EventSink:
    """
    Append-only JSON lines file shared by every stage and worker thread of a run.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self.emit(
            RunEvent(
                type=EventType.RUN_ENV.value,
                ts_utc=utc_now_iso(),
                run_id="__init__",
                data={
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "cwd": str(Path.cwd()),
                },
            )
        )

    def emit(self, event: RunEvent) -> None:
        line = event.to_line()
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")

    def read(self) -> list[RunEvent]:
        with self._lock:
            if not self.path.exists():
                return []
            lines = self.path.read_text(encoding="utf-8").splitlines()
        return [RunEvent.from_line(x) for x in lines if x.strip()]


def make_event(
    *,
    event_type: EventType | str,
    run_id: str,
    stage: Optional[str] = None,
    **data: Any,
) -> RunEvent:
    type_value = (
        event_type.value if isinstance(event_type, EventType) else str(event_type)
    )
    return RunEvent(
        type=type_value,
        ts_utc=utc_now_iso(),
        run_id=run_id,
        stage=stage,
        data=dict(data),
    )
