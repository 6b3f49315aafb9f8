from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(frozen=True, slots=True)
class RunLayout:
    """
    Canonical local layout for release runs:

      {runs_root}/{run_id}/events.jsonl
      {runs_root}/{run_id}/run_report.json
      {state_root}/locks/{target}.lock
    """

    runs_root: Path
    state_root: Path = Path(".release")

    def run_dir(self, run_id: str) -> Path:
        return self.runs_root / run_id

    def events_jsonl(self, run_id: str) -> Path:
        return self.run_dir(run_id) / "events.jsonl"

    def run_report_json(self, run_id: str) -> Path:
        return self.run_dir(run_id) / "run_report.json"

    def locks_dir(self) -> Path:
        return self.state_root / "locks"

    def target_lock(self, target_key: str) -> Path:
        return self.locks_dir() / f"{_UNSAFE.sub('_', target_key)}.lock"
