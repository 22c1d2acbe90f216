from .build import build_services
from .deploy import deploy_services
from .init import init_pipeline
from .models import BuildInvocation, BuildResult, DeployResult, InitResult, ReleaseResult, RunResult
from .release import release_services
from .run import run_container

__all__ = [
    "BuildInvocation",
    "BuildResult",
    "DeployResult",
    "InitResult",
    "ReleaseResult",
    "RunResult",
    "build_services",
    "deploy_services",
    "init_pipeline",
    "release_services",
    "run_container",
]
