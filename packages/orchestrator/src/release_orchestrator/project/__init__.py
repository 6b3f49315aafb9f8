from .descriptor import (
    ServiceSetDescriptor,
    check_deployable,
    load_template,
    render_descriptor,
)
from .loader import LoadedProject, StaticFile, load_project, resolve_config_dir
from .models import ReleaseProject, ServiceSpec

__all__ = [
    "LoadedProject",
    "ReleaseProject",
    "ServiceSetDescriptor",
    "ServiceSpec",
    "StaticFile",
    "check_deployable",
    "load_project",
    "load_template",
    "render_descriptor",
    "resolve_config_dir",
]
