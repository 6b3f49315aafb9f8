from __future__ import annotations

from pathlib import Path

import pytest
from release_orchestrator.core import (
    BuildError,
    ConnectivityError,
    RegistryTransferError,
    ReleaseError,
    Settings,
    SupervisorError,
    SyncError,
    TransferError,
    TransientError,
)


def test_error_taxonomy() -> None:
    assert issubclass(RegistryTransferError, TransferError)
    assert issubclass(RegistryTransferError, TransientError)
    assert issubclass(SyncError, TransferError)
    assert not issubclass(SyncError, TransientError)
    assert issubclass(ConnectivityError, TransientError)
    assert issubclass(TransientError, ReleaseError)


def test_build_error_keeps_engine_output_tail() -> None:
    output = "\n".join(f"step {i}" for i in range(10))
    err = BuildError("api", output)
    assert err.service == "api"
    assert err.engine_output == output
    assert "step 9" in str(err) and "step 4" not in str(err)


def test_supervisor_error_carries_step() -> None:
    err = SupervisorError("pull", "manifest unknown")
    assert err.step == "pull"
    assert "pull" in str(err) and "manifest unknown" in str(err)


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for k in ("RELEASE_REGISTRY", "RELEASE_TARGET_HOST", "RELEASE_MAX_WORKERS"):
        monkeypatch.delenv(k, raising=False)

    s = Settings()
    assert s.registry == "docker.io"
    assert s.build_timeout_s == 1800.0
    assert s.push_timeout_s == 900.0
    assert s.remote_timeout_s == 600.0
    assert s.publish_max_attempts == 3
    assert s.connect_max_attempts == 3
    assert s.max_workers == 4
    assert s.tag_length == 12


def test_settings_from_env_keeps_password_secret(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RELEASE_TARGET_HOST", "app-1.internal")
    monkeypatch.setenv("RELEASE_REGISTRY_PASSWORD", "hunter2")
    monkeypatch.setenv("RELEASE_MAX_WORKERS", "2")

    s = Settings()
    assert s.target_host == "app-1.internal"
    assert s.max_workers == 2
    assert s.registry_password is not None
    assert s.registry_password.get_secret_value() == "hunter2"
    assert "hunter2" not in repr(s)
