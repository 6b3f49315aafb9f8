from .cancel import CancelToken
from .config import Settings, load_settings
from .errors import (
    AuthError,
    BuildError,
    ConfigError,
    ConnectivityError,
    PipelineCancelled,
    RegistryTransferError,
    ReleaseError,
    RevisionError,
    StageError,
    SupervisorError,
    SyncError,
    TransferError,
    TransientError,
)
from .fs import atomic_write_text, ensure_parent, require_dir, require_file, safe_unlink
from .hashing import sha256_file, sha256_text
from .json import atomic_write_json, read_json, stable_json_dumps
from .locking import TargetLock
from .logging import ILogger, bind, clear_bindings, configure_logging, get_logger
from .paths import RunLayout
from .process import CommandResult, CommandRunner, SubprocessRunner
from .provenance import RunProvenance, new_run_id
from .retry import call_with_retries
from .time import format_duration_ms, monotonic_ms, utc_now_iso

__all__ = [
    "AuthError",
    "BuildError",
    "CancelToken",
    "CommandResult",
    "CommandRunner",
    "ConfigError",
    "ConnectivityError",
    "ILogger",
    "PipelineCancelled",
    "RegistryTransferError",
    "ReleaseError",
    "RevisionError",
    "RunLayout",
    "RunProvenance",
    "Settings",
    "StageError",
    "SubprocessRunner",
    "SupervisorError",
    "SyncError",
    "TargetLock",
    "TransferError",
    "TransientError",
    "atomic_write_json",
    "atomic_write_text",
    "bind",
    "call_with_retries",
    "clear_bindings",
    "configure_logging",
    "ensure_parent",
    "format_duration_ms",
    "get_logger",
    "load_settings",
    "monotonic_ms",
    "new_run_id",
    "read_json",
    "require_dir",
    "require_file",
    "safe_unlink",
    "sha256_file",
    "sha256_text",
    "stable_json_dumps",
    "utc_now_iso",
]
