from __future__ import annotations

import fcntl
import os
import threading
from pathlib import Path
from types import TracebackType

_REGISTRY_LOCK = threading.Lock()
_TARGET_LOCKS: dict[str, threading.Lock] = {}


def _process_lock(target_key: str) -> threading.Lock:
    with _REGISTRY_LOCK:
        lock = _TARGET_LOCKS.get(target_key)
        if lock is None:
            lock = threading.Lock()
            _TARGET_LOCKS[target_key] = lock
        return lock


class TargetLock:
    """
    Mutual exclusion keyed by deployment target.

    Two layers: a per-key threading.Lock serializes runs inside this process, an
    fcntl.flock on `lock_path` serializes separate processes on the same machine.
    The file lock is released by the kernel if the holder dies.

      with TargetLock("app-1:22/opt/app", lock_path):
          ...
    """

    def __init__(self, target_key: str, lock_path: Path | None = None) -> None:
        self.target_key = target_key
        self.lock_path = Path(lock_path) if lock_path is not None else None
        self._thread_lock = _process_lock(target_key)
        self._fd: int | None = None

    def acquire(self) -> None:
        self._thread_lock.acquire()
        if self.lock_path is None:
            return
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
            except OSError:
                os.close(fd)
                raise
            self._fd = fd
        except BaseException:
            self._thread_lock.release()
            raise

    def release(self) -> None:
        try:
            if self._fd is not None:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
                os.close(self._fd)
        finally:
            self._fd = None
            self._thread_lock.release()

    def locked(self) -> bool:
        return self._thread_lock.locked()

    def __enter__(self) -> "TargetLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
