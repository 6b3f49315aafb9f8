from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from .time import monotonic_ms


@dataclass(frozen=True, slots=True)
class CommandResult:
    """
    Outcome of one external command. Never raised, always returned.
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr joined, for error messages."""
        parts = [p.strip() for p in (self.stdout, self.stderr) if p and p.strip()]
        return "\n".join(parts)


class CommandRunner(Protocol):
    def __call__(
        self,
        args: Sequence[str],
        *,
        timeout: float,
        cwd: Path | None = None,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult: ...


@dataclass(slots=True)
class SubprocessRunner:
    """
    Run commands with `subprocess.run`, capture output and enforce a timeout.

    Children start in their own session, so a terminal Ctrl-C reaches only this
    process (which turns it into a CancelToken) and never an in-flight build,
    push or remote converge.
    """

    base_env: Mapping[str, str] | None = None
    timeout_returncode: int = 124

    def __call__(
        self,
        args: Sequence[str],
        *,
        timeout: float,
        cwd: Path | None = None,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        argv = tuple(str(a) for a in args)
        merged_env = None
        if self.base_env is not None or env is not None:
            merged_env = {**(self.base_env or {}), **(env or {})}

        t0 = monotonic_ms()
        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                input=input_text,
                env=merged_env,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
                start_new_session=True,
            )
        except subprocess.TimeoutExpired as e:
            res = CommandResult(
                args=argv,
                returncode=self.timeout_returncode,
                stdout=_text(e.stdout),
                stderr=_text(e.stderr) or f"timed out after {timeout:g}s",
                duration_ms=monotonic_ms() - t0,
                timed_out=True,
            )
        except FileNotFoundError as e:
            res = CommandResult(
                args=argv,
                returncode=127,
                stderr=str(e),
                duration_ms=monotonic_ms() - t0,
            )
        else:
            res = CommandResult(
                args=argv,
                returncode=proc.returncode,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
                duration_ms=monotonic_ms() - t0,
            )

        return res


def _text(v: bytes | str | None) -> str:
    if v is None:
        return ""
    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    return v
