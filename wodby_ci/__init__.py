"""CI pipeline helpers for building, releasing and deploying Wodby app services."""

__version__ = "0.1.0"
from .config import Settings
from .errors import WodbyCIError
from .schemas.state import PipelineState
from .stages import (
    build_services,
    deploy_services,
    init_pipeline,
    release_services,
    run_container,
)
from .state import load_state, save_state

__all__ = [
    "__version__",
    "Settings",
    "WodbyCIError",
    "PipelineState",
    "load_state",
    "save_state",
    "init_pipeline",
    "build_services",
    "release_services",
    "deploy_services",
    "run_container",
]
