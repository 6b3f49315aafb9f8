from .build import stage_build
from .deploy import stage_deploy
from .publish import stage_publish, stage_resolve
from .tag import stage_tag

__all__ = [
    "stage_tag",
    "stage_build",
    "stage_publish",
    "stage_resolve",
    "stage_deploy",
]
