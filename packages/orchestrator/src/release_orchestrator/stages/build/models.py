from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class BuildContext:
    """
    Everything the build engine needs for one service. Not parsed, only passed on.
    """

    service: str
    image: str
    context_dir: Path
    dockerfile: Path
    build_args: Mapping[str, str] = field(default_factory=dict)
    target: str | None = None


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    """
    A built, not yet published image, addressable in the local engine.
    """

    service: str
    identifier: str
    local_ref: str
    alias_ref: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "identifier": self.identifier,
            "local_ref": self.local_ref,
            "alias_ref": self.alias_ref,
        }
