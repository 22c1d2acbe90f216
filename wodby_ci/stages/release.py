"""`ci release`: push built images and mark them deployable."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..api.client import APIClient
from ..config import Settings
from ..docker import DockerClient
from ..errors import ServiceNotBuiltError
from ..images import registry_tag, replace_tag, sanitize_tag, split_tag
from ..metadata import git_ref
from ..schemas.state import GIT_REF_TYPE_BRANCH, BuiltService, PipelineState
from ..services import resolve_services
from ..state import load_state, save_state
from .models import ReleaseResult

logger = logging.getLogger(__name__)

DEFAULT_LATEST_BRANCH = "master"
LATEST_TAG = "latest"


def release_services(
    services: Sequence[str] = (),
    *,
    settings: Settings,
    registry: Optional[str] = None,
    latest_branch: Optional[str] = DEFAULT_LATEST_BRANCH,
    branch_tag: bool = False,
    api: Optional[APIClient] = None,
    docker: Optional[DockerClient] = None,
) -> ReleaseResult:
    """Push the selected built services, or every built service when none are named.

    With `registry` the images are retagged into that registry instead and the
    default registry login is skipped.
    """

    state = load_state(settings.state_path)
    if not state.built_services:
        raise ServiceNotBuiltError("No services have been built yet; run `wodby ci build` first")

    if services:
        selected = resolve_services(state.built_services, services, error=ServiceNotBuiltError, kind="built service")
    else:
        selected = list(state.built_services)

    docker = docker or DockerClient()
    if not registry:
        api = api or APIClient(settings.api_config(state.api_config))
        credentials = api.get_registry_credentials(state.build.id)
        docker.login(state.registry_host or credentials.host, credentials.username, credentials.password)

    ref_type, ref = _release_ref(state)
    result = ReleaseResult(state_path=str(settings.state_path))
    for built in selected:
        if registry:
            tag = split_tag(built.image)[1] or str(state.build.number)
            target = registry_tag(registry, _repository(state, built), tag)
            docker.tag(built.image, target)
            built.image = target

        logger.info("Releasing %s", built.name)
        docker.push(built.image)
        result.pushed.append(built.image)

        for extra in _extra_tags(built.image, ref_type, ref, latest_branch=latest_branch, branch_tag=branch_tag):
            docker.tag(built.image, extra)
            docker.push(extra)
            result.pushed.append(extra)

        built.released = True
        result.released.append(built.name)
        save_state(state, settings.state_path)

    return result


def _extra_tags(
    image: str,
    ref_type: str,
    ref: str,
    *,
    latest_branch: Optional[str],
    branch_tag: bool,
) -> List[str]:
    """Additional tags for a branch build: `latest` for the latest branch, the branch name on request."""

    if ref_type != GIT_REF_TYPE_BRANCH or not ref:
        return []
    tags: List[str] = []
    if latest_branch and ref == latest_branch:
        tags.append(replace_tag(image, LATEST_TAG))
    if branch_tag:
        branch = sanitize_tag(ref)
        if branch:
            tags.append(replace_tag(image, branch))
    return tags


def _release_ref(state: PipelineState) -> tuple[str, str]:
    if state.build.git_ref:
        return state.build.git_ref_type, state.build.git_ref
    return git_ref(state.metadata)


def _repository(state: PipelineState, built: BuiltService) -> str:
    definition = state.find_definition(built.name)
    if definition is not None:
        return definition.repository
    return split_tag(built.image)[0]
