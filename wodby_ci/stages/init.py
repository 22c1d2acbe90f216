"""`ci init`: fetch the build configuration and write the pipeline state."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Callable, Mapping, Optional

import yaml

from ..api.client import APIClient
from ..api.models import AppBuild
from ..config import Settings, require_api_config
from ..docker import ROOT_USER, DockerClient, RunConfig
from ..errors import ConfigError, StateFileError
from ..metadata import CIRCLE_CI, GITLAB_CI, GitRunner, collect_build_metadata, run_git, to_ci_build_input
from ..schemas.state import BuildMetadata, PipelineState, ServiceDefinition
from ..state import save_state
from .models import InitResult

logger = logging.getLogger(__name__)


def init_pipeline(
    build_id: str,
    *,
    settings: Settings,
    environ: Mapping[str, str],
    context: Optional[str | Path] = None,
    fix_permissions: bool = False,
    dind: bool = False,
    new_build: bool = False,
    build_number: Optional[str] = None,
    build_url: Optional[str] = None,
    provider: Optional[str] = None,
    api: Optional[APIClient] = None,
    docker: Optional[DockerClient] = None,
    git: GitRunner = run_git,
    container_name: Callable[[], str] = lambda: f"wodby-ci-{uuid.uuid4().hex[:12]}",
) -> InitResult:
    """Initialize the CI state for `build_id`.

    With `new_build`, `build_id` is an app instance id and a new CI build is
    created for it first.
    """

    api_config = require_api_config(settings.api_config())
    context_path = _resolve_context(context)
    numeric_id = None if new_build else _parse_build_id(build_id)

    api = api or APIClient(api_config)
    docker = docker or DockerClient()

    metadata = collect_build_metadata(
        environ,
        build_number=build_number,
        build_url=build_url,
        provider=provider,
        git=git,
    )

    app_build: AppBuild
    if numeric_id is None:
        logger.info("Creating a new CI build for app instance %s...", build_id)
        app_build = api.new_ci_build(build_id, to_ci_build_input(metadata))
    else:
        logger.info("Requesting build info for build %s...", numeric_id)
        app_build = api.get_app_build(numeric_id)

    credentials = api.get_registry_credentials(app_build.id)
    registry_host = app_build.config.registry_host or credentials.host
    docker.login(registry_host, credentials.username, credentials.password)

    state = PipelineState(
        id=app_build.id,
        context=str(context_path),
        api_config=api_config,
        build=app_build.info(),
        registry_host=registry_host,
        service_definitions=app_build.config.app_service_build_configs,
        metadata=metadata,
    )
    main = state.main_service()

    if dind or _detect_dind(context_path, metadata):
        if main is None:
            raise ConfigError("Docker-in-docker mode requires a main service to share its working directory.")
        state.working_dir = docker.inspect_working_dir(main.image)
        state.data_container = container_name()
        logger.info("Using docker in docker build schema. Creating data container %s...", state.data_container)
        docker.create_data_container(state.data_container, state.working_dir)
        docker.copy_into(context_path, state.data_container, state.working_dir)

    save_state(state, settings.state_path)
    logger.info("CI config written to %s", settings.state_path)

    permissions_fixed = False
    if main is not None and (fix_permissions or (settings.ci and main.managed)):
        if fix_permissions:
            logger.info("Fixing codebase permissions...")
        else:
            logger.info("Fixing permissions for managed service %s", main.title or main.name)
        permissions_fixed = _fix_permissions(docker, state, main)
    elif fix_permissions:
        logger.warning("No main service in the build config; skipping permissions fix")

    return InitResult(
        state_path=str(settings.state_path),
        build_id=state.build.id,
        build_number=state.build.number,
        registry_host=registry_host,
        services=[definition.name for definition in state.service_definitions],
        data_container=state.data_container,
        working_dir=state.working_dir,
        permissions_fixed=permissions_fixed,
        metadata=state.metadata.model_dump(mode="json", by_alias=True),
    )


def _fix_permissions(docker: DockerClient, state: PipelineState, main: ServiceDefinition) -> bool:
    """Chown the codebase to the main image's default user; a root image needs nothing."""

    default_user = docker.inspect_default_user(main.image)
    if default_user == ROOT_USER:
        logger.info("Default user of the main service is root, skipping permissions fix")
        return False

    working_dir = state.working_dir or docker.inspect_working_dir(main.image)
    config = RunConfig(image=main.image, user=ROOT_USER, workdir=working_dir)
    if state.data_container:
        config.volumes_from.append(state.data_container)
    else:
        config.volumes.append(f"{state.context}:{working_dir}")
    docker.run(["chown", "-R", f"{default_user}:{default_user}", "."], config)
    return True


def _detect_dind(context: Path, metadata: BuildMetadata) -> bool:
    """Docker executors on CircleCI and GitLab runners cannot bind-mount the checkout."""

    if metadata.provider == GITLAB_CI:
        return True
    if metadata.provider != CIRCLE_CI:
        return False

    config_path = context / ".circleci" / "config.yml"
    if not config_path.exists():
        return False
    try:
        config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise StateFileError(f"Failed to read {config_path}: {exc}") from exc
    jobs = config.get("jobs") if isinstance(config, dict) else None
    build = jobs.get("build") if isinstance(jobs, dict) else None
    return isinstance(build, dict) and build.get("docker") is not None


def _resolve_context(context: Optional[str | Path]) -> Path:
    path = Path(context).resolve() if context else Path.cwd()
    if not path.is_dir():
        raise ConfigError(f"Build context {path} is not a directory")
    return path


def _parse_build_id(value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"Build ID must be numeric (got '{value}'); use --new-build for an app instance id") from exc
