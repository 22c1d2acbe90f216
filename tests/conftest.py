from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from wodby_ci.api.models import AppBuild, Deployment, Task
from wodby_ci.config import Settings
from wodby_ci.docker import RunConfig
from wodby_ci.errors import ExecError
from wodby_ci.schemas.state import (
    APIConfig,
    BuildInfo,
    BuildMetadata,
    BuiltService,
    PipelineState,
    RegistryCredentials,
    ServiceDefinition,
)
from wodby_ci.state import save_state


class FakeDocker:
    """Records docker adapter calls instead of running the docker CLI."""

    def __init__(self, *, default_user: str = "wodby", working_dir: str = "/var/www/html") -> None:
        self.default_user = default_user
        self.working_dir = working_dir
        self.calls: List[tuple] = []
        self.builds: List[Dict[str, Any]] = []
        self.fail_builds_for: set[str] = set()

    def login(self, host: str, username: str, password: str) -> None:
        self.calls.append(("login", host, username, password))

    def build(self, dockerfile: str, tags: Sequence[str], context, build_args=None) -> None:
        ignore = Path(context) / ".dockerignore"
        record = {
            "dockerfile": dockerfile,
            "tags": list(tags),
            "context": str(context),
            "build_args": dict(build_args or {}),
            "dockerignore": ignore.read_text(encoding="utf-8") if ignore.exists() else None,
        }
        self.builds.append(record)
        self.calls.append(("build", list(tags)))
        if any(tag in self.fail_builds_for for tag in tags):
            raise ExecError(["docker", "build"], 1, "build failed")

    def push(self, image: str) -> None:
        self.calls.append(("push", image))

    def pull(self, image: str) -> None:
        self.calls.append(("pull", image))

    def tag(self, source: str, target: str) -> None:
        self.calls.append(("tag", source, target))

    def inspect_default_user(self, image: str) -> str:
        self.calls.append(("inspect_default_user", image))
        return self.default_user

    def inspect_working_dir(self, image: str) -> str:
        self.calls.append(("inspect_working_dir", image))
        return self.working_dir

    def create_data_container(self, name: str, volume: str, image: str = "alpine") -> None:
        self.calls.append(("create_data_container", name, volume))

    def copy_into(self, source, container: str, destination: str) -> None:
        self.calls.append(("copy_into", str(source), container, destination))

    def run(self, command: Sequence[str], config: RunConfig) -> None:
        self.calls.append(("run", list(command), config))

    def named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeAPI:
    """In-memory stand-in for `APIClient`."""

    def __init__(
        self,
        *,
        app_build: Optional[AppBuild] = None,
        credentials: Optional[RegistryCredentials] = None,
        deployment: Optional[Deployment] = None,
        statuses: Sequence[str] = (),
    ) -> None:
        self.app_build = app_build or make_app_build()
        self.credentials = credentials or RegistryCredentials(
            host="registry.wodby.com", username="ci", password="secret"
        )
        self.deployment = deployment or Deployment(id=7, task_id="task-1", status="Waiting")
        self.statuses = list(statuses)
        self.calls: List[tuple] = []

    def get_app_build(self, build_id: int) -> AppBuild:
        self.calls.append(("get_app_build", build_id))
        return self.app_build

    def new_ci_build(self, app_instance_id: str, build_input) -> AppBuild:
        self.calls.append(("new_ci_build", app_instance_id, dict(build_input)))
        return self.app_build

    def get_registry_credentials(self, build_id: int) -> RegistryCredentials:
        self.calls.append(("get_registry_credentials", build_id))
        return self.credentials

    def deploy(self, build_id: int, services, *, post_deployment: bool = False, metadata=None) -> Deployment:
        self.calls.append(("deploy", build_id, list(services), post_deployment, metadata))
        return self.deployment

    def get_task(self, task_id: str) -> Task:
        self.calls.append(("get_task", task_id))
        status = self.statuses.pop(0) if self.statuses else "Done"
        return Task(id=task_id, title="Deploy", status=status)


def make_definitions() -> List[ServiceDefinition]:
    return [
        ServiceDefinition(name="php", title="PHP", slug="wodby/app/php", image="wodby/php:8.2", main=True, managed=True),
        ServiceDefinition(name="crond", title="Cron", slug="wodby/app/crond", image="wodby/php:8.2"),
        ServiceDefinition(name="nginx", title="Nginx", slug="wodby/app/nginx", image="wodby/nginx:1.25"),
    ]


def make_app_build(**overrides: Any) -> AppBuild:
    payload: Dict[str, Any] = {
        "id": 42,
        "number": 17,
        "gitRefType": "branch",
        "gitRef": "master",
        "config": {
            "registryHost": "registry.wodby.com",
            "appServiceBuildConfigs": [definition.model_dump(by_alias=True) for definition in make_definitions()],
        },
    }
    payload.update(overrides)
    return AppBuild.model_validate(payload)


def make_state(context: Path, **overrides: Any) -> PipelineState:
    values: Dict[str, Any] = {
        "id": 42,
        "context": str(context),
        "api_config": APIConfig(key="key-123", endpoint="https://api.example.test/query"),
        "build": BuildInfo(id=42, number=17, git_ref_type="branch", git_ref="master"),
        "registry_host": "registry.wodby.com",
        "service_definitions": make_definitions(),
        "metadata": BuildMetadata(known=True, provider="GitHub Actions", number="17", branch="master", commit="abc"),
    }
    values.update(overrides)
    return PipelineState(**values)


def built(name: str, image: str, released: bool = False) -> BuiltService:
    return BuiltService(name=name, image=image, released=released)


@pytest.fixture
def context_dir(tmp_path: Path) -> Path:
    path = tmp_path / "codebase"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_key="key-123",
        api_endpoint="https://api.example.test/query",
        state_path=tmp_path / "state" / "wodby-ci.json",
    )


@pytest.fixture
def docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def write_state(settings: Settings, context_dir: Path):
    def _write(**overrides: Any) -> PipelineState:
        state = make_state(context_dir, **overrides)
        save_state(state, settings.state_path)
        return state

    return _write
