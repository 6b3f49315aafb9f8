from __future__ import annotations

from functools import cached_property
from pathlib import PurePosixPath
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator
from release_orchestrator.core import ConfigError

IdPattern = r"^[a-z0-9][a-z0-9_\-]*[a-z0-9]$"

ServiceName = Annotated[
    str,
    StringConstraints(min_length=2, max_length=63, pattern=IdPattern),
]
ImageName = Annotated[
    str,
    StringConstraints(
        min_length=2, max_length=128, pattern=r"^[a-z0-9][a-z0-9_\-\./]*[a-z0-9]$"
    ),
]


class ServiceSpec(BaseModel):
    """
    One buildable service: where its build context lives and what its image is called.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: ServiceName
    context: str = Field(..., min_length=1, examples=["services/api"])
    dockerfile: str = Field(default="Dockerfile", min_length=1)
    image: ImageName = Field(..., examples=["webapp-api"])
    build_args: dict[str, str] = Field(default_factory=dict)
    target: str | None = None


class ReleaseProject(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    spec_version: int = Field(..., ge=1)
    project: ServiceName
    source_root: str = Field(default=".")
    compose_template: str = Field(default="compose.template.yml", min_length=1)
    descriptor_name: str = Field(default="compose.yml", min_length=1)
    static_files: list[str] = Field(default_factory=list)
    services: list[ServiceSpec] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _validate(self) -> "ReleaseProject":
        names = [s.name for s in self.services]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate service names in project {self.project}")

        images = [s.image for s in self.services]
        if len(images) != len(set(images)):
            raise ValueError(f"Duplicate image names in project {self.project}")

        for rel in [*self.static_files, self.descriptor_name]:
            p = PurePosixPath(rel)
            if p.is_absolute() or ".." in p.parts:
                raise ValueError(f"Remote file must be a relative path inside the workdir: {rel}")

        if self.descriptor_name in self.static_files:
            raise ValueError("descriptor_name collides with a static file")

        return self

    @cached_property
    def service_map(self) -> dict[str, ServiceSpec]:
        return {s.name: s for s in self.services}

    def select(self, names: list[str] | None) -> list[ServiceSpec]:
        """
        Services to build, in declaration order. `None` means all of them.
        """
        if names is None:
            return list(self.services)
        unknown = sorted(set(names) - set(self.service_map))
        if unknown:
            raise ConfigError(f"Unknown service(s): {unknown}")
        wanted = set(names)
        return [s for s in self.services if s.name in wanted]
