"""Client for the Wodby API."""

from .client import APIClient
from .models import AppBuild, AppBuildConfig, Deployment, Task

__all__ = [
    "APIClient",
    "AppBuild",
    "AppBuildConfig",
    "Deployment",
    "Task",
]
