"""Response payloads returned by the Wodby API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator

from ..schemas.state import BuildInfo, ServiceDefinition, StateModel


class AppBuildConfig(StateModel):
    registry_host: str = ""
    app_service_build_configs: List[ServiceDefinition] = Field(default_factory=list)

    @field_validator("registry_host", mode="before")
    @classmethod
    def none_as_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("app_service_build_configs", mode="before")
    @classmethod
    def null_list(cls, value: object) -> object:
        return [] if value is None else value


class AppBuild(BuildInfo):
    config: AppBuildConfig = Field(default_factory=AppBuildConfig)

    def info(self) -> BuildInfo:
        return BuildInfo(
            id=self.id,
            number=self.number,
            git_ref_type=self.git_ref_type,
            git_ref=self.git_ref,
        )


class Deployment(StateModel):
    id: Optional[int] = None
    task_id: Optional[str] = None
    status: Optional[str] = None

    @field_validator("task_id", "status", mode="before")
    @classmethod
    def as_text(cls, value: object) -> object:
        return None if value is None else str(value)


class Task(StateModel):
    id: str
    title: str = ""
    status: str = ""

    @field_validator("id", "title", "status", mode="before")
    @classmethod
    def as_text(cls, value: object) -> object:
        return "" if value is None else str(value)
