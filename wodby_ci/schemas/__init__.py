"""Schema definitions for pipeline state."""

from .state import (
    APIConfig,
    BuildInfo,
    BuildMetadata,
    BuiltService,
    PipelineState,
    RegistryCredentials,
    ServiceDefinition,
)

__all__ = [
    "APIConfig",
    "BuildInfo",
    "BuildMetadata",
    "BuiltService",
    "PipelineState",
    "RegistryCredentials",
    "ServiceDefinition",
]
