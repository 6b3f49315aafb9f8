from .deployer import RemoteDeployer
from .models import DeployAttempt, DeploymentTarget, DeployOutcome, DeployState
from .stage import stage_deploy
from .transport import RemoteTransport, SshTransport, is_connection_failure

__all__ = [
    "DeployAttempt",
    "DeployOutcome",
    "DeployState",
    "DeploymentTarget",
    "RemoteDeployer",
    "RemoteTransport",
    "SshTransport",
    "is_connection_failure",
    "stage_deploy",
]
