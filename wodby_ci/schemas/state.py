"""Pydantic models describing the persisted pipeline state."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GIT_REF_TYPE_BRANCH = "branch"
GIT_REF_TYPE_TAG = "tag"


class StateModel(BaseModel):
    """Camel-case JSON keys; unknown keys from other schema versions are ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class APIConfig(StateModel):
    key: str = ""
    access_token: str = ""
    endpoint: str = ""


class BuildInfo(StateModel):
    id: int = 0
    number: int = 0
    git_ref_type: str = GIT_REF_TYPE_BRANCH
    git_ref: str = ""

    @field_validator("git_ref_type", "git_ref", mode="before")
    @classmethod
    def none_as_empty(cls, value: object) -> object:
        return "" if value is None else value


class ServiceDefinition(StateModel):
    name: str
    image: str
    title: str = ""
    slug: str = ""
    managed: bool = False
    main: bool = False
    dockerfile: Optional[str] = Field(default=None, description="Custom Dockerfile content.")
    dockerignore: Optional[str] = Field(default=None, description="Custom .dockerignore content.")
    build_args: Dict[str, str] = Field(default_factory=dict)

    @field_validator("build_args", mode="before")
    @classmethod
    def none_as_empty(cls, value: object) -> object:
        return {} if value is None else value

    @property
    def repository(self) -> str:
        """Image repository the built image is tagged into."""

        return self.slug or self.name


class BuiltService(StateModel):
    name: str
    image: str
    released: bool = False


class BuildMetadata(StateModel):
    known: bool = False
    provider: str = ""
    number: str = ""
    url: str = ""
    branch: str = ""
    tag: str = ""
    commit: str = ""
    comment: str = ""
    author_name: str = ""
    author_email: str = ""


class RegistryCredentials(StateModel):
    host: str = ""
    username: str
    password: str


class PipelineState(StateModel):
    id: int
    context: str
    working_dir: Optional[str] = None
    data_container: Optional[str] = None
    api_config: APIConfig = Field(default_factory=APIConfig)
    build: BuildInfo = Field(default_factory=BuildInfo)
    registry_host: str = ""
    service_definitions: List[ServiceDefinition] = Field(default_factory=list)
    built_services: List[BuiltService] = Field(default_factory=list)
    metadata: BuildMetadata = Field(default_factory=BuildMetadata)

    @field_validator("service_definitions", "built_services", mode="before")
    @classmethod
    def null_list(cls, value: object) -> object:
        return [] if value is None else value

    def find_definition(self, name: str) -> Optional[ServiceDefinition]:
        for definition in self.service_definitions:
            if definition.name == name:
                return definition
        return None

    def main_service(self) -> Optional[ServiceDefinition]:
        for definition in self.service_definitions:
            if definition.main:
                return definition
        return None

    def find_built(self, name: str) -> Optional[BuiltService]:
        for built in self.built_services:
            if built.name == name:
                return built
        return None

    def record_built(self, name: str, image: str) -> BuiltService:
        """Add or replace the built entry for `name`; a rebuilt image is not released yet."""

        entry = BuiltService(name=name, image=image, released=False)
        for index, built in enumerate(self.built_services):
            if built.name == name:
                self.built_services[index] = entry
                return entry
        self.built_services.append(entry)
        return entry

    def released_services(self) -> List[BuiltService]:
        return [built for built in self.built_services if built.released]
