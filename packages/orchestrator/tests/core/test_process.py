from __future__ import annotations

import os
import sys

from release_orchestrator.core import SubprocessRunner


def test_subprocess_runner_captures_output_and_stdin() -> None:
    run = SubprocessRunner()
    res = run(
        [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
        timeout=30,
        input_text="token",
    )
    assert res.ok
    assert res.stdout.strip() == "TOKEN"
    assert res.args[0] == sys.executable


def test_subprocess_runner_nonzero_exit() -> None:
    res = SubprocessRunner()(
        [sys.executable, "-c", "import sys; sys.stderr.write('nope'); sys.exit(3)"], timeout=30
    )
    assert not res.ok
    assert res.returncode == 3
    assert res.output == "nope"


def test_subprocess_runner_timeout_is_a_result() -> None:
    res = SubprocessRunner()([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)
    assert res.timed_out
    assert not res.ok
    assert res.returncode == 124


def test_subprocess_runner_missing_binary() -> None:
    res = SubprocessRunner()(["definitely-not-a-real-binary-xyz"], timeout=5)
    assert res.returncode == 127
    assert not res.ok


def test_subprocess_runner_children_get_their_own_session() -> None:
    res = SubprocessRunner()([sys.executable, "-c", "import os; print(os.getsid(0))"], timeout=30)
    assert res.ok
    assert int(res.stdout) != os.getsid(0)


INTERRUPTED_CONVERGE = """
import os, signal, threading
from release_orchestrator import cli
from release_orchestrator.core import CancelToken, SubprocessRunner

if os.getpgrp() != os.getpid():
    os.setpgrp()
token = CancelToken()
cli._install_cancel_handlers(token)
threading.Timer(0.5, os.killpg, (os.getpgrp(), signal.SIGINT)).start()
res = SubprocessRunner()(["sh", "-c", "sleep 2; echo converged"], timeout=30)
print("RESULT", res.returncode, res.stdout.strip(), token.cancelled)
"""


def test_ctrl_c_cancels_the_run_but_not_the_running_command() -> None:
    res = SubprocessRunner()([sys.executable, "-c", INTERRUPTED_CONVERGE], timeout=60)

    assert res.ok, res.output
    assert res.stdout.strip().splitlines()[-1] == "RESULT 0 converged True"
