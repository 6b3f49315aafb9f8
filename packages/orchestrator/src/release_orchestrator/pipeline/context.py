from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from release_orchestrator.core import CancelToken, ILogger, sha256_file

from .events import EventSink, EventType, make_event


@dataclass(frozen=True, slots=True)
class RunFile:
    """A file a stage wrote into the run directory, e.g. the materialized compose.yml."""

    path: str
    size_bytes: int
    sha256: str
    content_type: str | None = None


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stages for a single pipeline run.

    `meta` carries the run inputs. `handoff` carries the immutable values each
    stage produces for the stages after it (identifier, build artifacts,
    published artifacts, descriptor); a stage only ever adds keys to it.
    """

    run_id: str
    run_root: Path
    logger: ILogger
    events: EventSink
    cancel: CancelToken = field(default_factory=CancelToken)

    meta: dict[str, Any] = field(default_factory=dict)
    handoff: dict[str, Any] = field(default_factory=dict)

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, *, stage: str | None = None, **kw: object) -> None:
        # Keep event chatter at debug level to leave console logs readable.
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.events.emit(
            make_event(event_type=event_value, run_id=self.run_id, stage=stage, **kw)
        )
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)

    def require(self, key: str) -> Any:
        if key not in self.handoff:
            raise KeyError(f"No {key!r} handed off by an earlier stage")
        return self.handoff[key]

    def record_artifact(
        self,
        *,
        stage: str,
        path: Path,
        content_type: str | None = None,
    ) -> RunFile:
        p = Path(path)
        sha, size = sha256_file(p)
        rel = str(p.relative_to(self.run_root)) if p.is_relative_to(self.run_root) else str(p)
        art = RunFile(path=rel, size_bytes=size, sha256=sha, content_type=content_type)
        self.emit(
            EventType.ARTIFACT_WRITTEN,
            stage=stage,
            path=art.path,
            size_bytes=art.size_bytes,
            sha256=art.sha256,
            content_type=art.content_type,
        )
        return art
