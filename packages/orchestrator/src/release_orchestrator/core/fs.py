import os
import tempfile
from pathlib import Path

from .errors import ConfigError


def ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def safe_unlink(path: os.PathLike[str] | str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        return


def require_file(path: Path, *, label: str) -> Path:
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Missing required {label}: {p}")
    return p


def require_dir(path: Path, *, label: str) -> Path:
    p = Path(path)
    if not p.is_dir():
        raise ConfigError(f"Missing required {label}: {p}")
    return p


def fsync_dir(parent: Path) -> None:
    """
    Ensure directory entry durability after atomic rename.
    """
    fd: int | None = None
    try:
        fd = os.open(parent, os.O_RDONLY)
        os.fsync(fd)
    finally:
        if fd is not None:
            os.close(fd)


def atomic_write_text(
    path: Path,
    text: str,
    *,
    encoding: str = "utf-8",
    mode: int = 0o644,
) -> None:
    """
    Atomically write text to `path`.

    Readers see either the previous complete file or the new one. The temp file
    lives in the same directory so the final os.replace is a rename.
    """
    path = Path(path)
    ensure_parent(path)

    fd: int | None = None
    tmp_path: Path | None = None

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.",
            suffix=".tmp",
            dir=str(path.parent),
            text=True,
        )
        tmp_path = Path(tmp_name)

        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            fd = None
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        fsync_dir(path.parent)

    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None and tmp_path.exists():
            safe_unlink(tmp_path)
