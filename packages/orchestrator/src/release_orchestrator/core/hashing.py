from __future__ import annotations

import hashlib
from pathlib import Path

_READ_CHUNK = 1 << 20


def sha256_text(s: str) -> str:
    """
    Hex sha256 of UTF-8 text. Descriptor identity and hashed revision tags both
    come from here, so a change in encoding changes every identifier.
    """
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> tuple[str, int]:
    """(hex sha256, size in bytes) of a file written into a run directory."""
    h = hashlib.sha256()
    size = 0
    with Path(path).open("rb") as f:
        for block in iter(lambda: f.read(_READ_CHUNK), b""):
            h.update(block)
            size += len(block)
    return h.hexdigest(), size
