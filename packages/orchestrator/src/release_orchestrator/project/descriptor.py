from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from release_orchestrator.core import ConfigError, sha256_text


@dataclass(frozen=True, slots=True)
class ServiceSetDescriptor:
    """
    The compose document a deploy converges the remote host onto.

    `images` pins every declared service (built or third-party) to the exact
    reference it will run. `content` is what lands on the remote host.
    """

    identifier: str
    content: str
    images: Mapping[str, str] = field(default_factory=dict)
    sha256: str = ""

    @property
    def services(self) -> list[str]:
        return sorted(self.images)


def load_template(path: Path) -> dict[str, Any]:
    try:
        doc = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Compose template {path} is not valid YAML: {e}") from e
    if not isinstance(doc, dict) or not isinstance(doc.get("services"), dict):
        raise ConfigError(f"Compose template {path} must contain a 'services' mapping")
    return doc


def check_deployable(template: Mapping[str, Any], services: Iterable[str]) -> None:
    """
    Raise `ConfigError` unless publishing exactly `services` leaves every
    template service runnable: each selected service is declared, and no
    unselected service still depends on a local build.
    """
    declared: Mapping[str, Any] = template["services"]
    selected = set(services)

    missing = sorted(selected - set(declared))
    if missing:
        raise ConfigError(f"Published service(s) not declared in compose template: {missing}")

    for name, svc in declared.items():
        if name not in selected and isinstance(svc, dict) and "build" in svc:
            raise ConfigError(
                f"Compose service {name!r} has a build section but no published artifact"
            )


def render_descriptor(
    template: Mapping[str, Any],
    *,
    identifier: str,
    images: Mapping[str, str],
) -> ServiceSetDescriptor:
    """
    Substitute published image references into the static template.

    Every service in `images` must be declared in the template; its `build`
    section is dropped because the remote host only pulls. A template service
    that still needs a build afterwards is a configuration error, as is any
    service left without an image.
    """
    doc = copy.deepcopy(dict(template))
    services: dict[str, Any] = doc["services"]

    check_deployable(template, images)

    pinned: dict[str, str] = {}
    for name in services:
        svc = services[name]
        if svc is None:
            svc = services[name] = {}
        if not isinstance(svc, dict):
            raise ConfigError(f"Compose service {name!r} must be a mapping")

        if name in images:
            svc.pop("build", None)
            svc["image"] = images[name]

        image = svc.get("image")
        if not image:
            raise ConfigError(f"Compose service {name!r} has no image")
        pinned[name] = str(image)

    body = yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)
    content = f"# release {identifier}\n{body}"
    return ServiceSetDescriptor(
        identifier=identifier,
        content=content,
        images=pinned,
        sha256=sha256_text(content),
    )
