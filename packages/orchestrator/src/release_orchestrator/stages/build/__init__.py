from .builder import LATEST, ImageBuilder, build_context_for
from .models import BuildArtifact, BuildContext
from .stage import stage_build

__all__ = [
    "LATEST",
    "BuildArtifact",
    "BuildContext",
    "ImageBuilder",
    "build_context_for",
    "stage_build",
]
