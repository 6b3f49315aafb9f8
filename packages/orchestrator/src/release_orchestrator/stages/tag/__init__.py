from .stage import stage_tag
from .tagger import ArtifactIdentifier, VersionTagger, resolve_revision

__all__ = ["ArtifactIdentifier", "VersionTagger", "resolve_revision", "stage_tag"]
