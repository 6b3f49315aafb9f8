from __future__ import annotations

import getpass
import os
import platform
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any


def new_run_id() -> str:
    return uuid.uuid4().hex


def _operator() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


@dataclass(frozen=True, slots=True)
class RunProvenance:
    """
    Who and where a release run was started from. Lands in run_report.json.
    """

    run_id: str
    started_at_utc: str
    hostname: str = field(default_factory=platform.node)
    operator: str = field(default_factory=_operator)
    pid: int = field(default_factory=os.getpid)
    python: str = field(default_factory=lambda: platform.python_version())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
