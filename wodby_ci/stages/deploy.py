"""`ci deploy`: submit released images for deployment."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from ..api.client import APIClient
from ..config import Settings
from ..errors import DeploymentRejectedError, NothingReleasedError, ServiceNotBuiltError, ServiceNotReleasedError
from ..metadata import git_ref
from ..schemas.state import BuildMetadata, BuiltService, PipelineState
from ..services import resolve_services
from ..state import load_state
from ..tasks import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, wait_for_task
from .models import DeployResult

logger = logging.getLogger(__name__)


def deploy_services(
    services: Sequence[str] = (),
    *,
    settings: Settings,
    build_number: Optional[str] = None,
    build_url: Optional[str] = None,
    tag: Optional[str] = None,
    post_deployment: bool = False,
    wait: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
    api: Optional[APIClient] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> DeployResult:
    """Deploy the released services, or only the named ones.

    The state file is not modified. With `wait` the deployment task is polled
    until it finishes.
    """

    state = load_state(settings.state_path)
    selected = select_deployable(state, services)

    metadata = state.metadata.model_copy()
    if build_number:
        metadata.number = build_number
    if build_url:
        metadata.url = build_url
    if tag:
        metadata.tag = tag

    payload = [{"name": built.name, "image": built.image} for built in selected]
    api = api or APIClient(settings.api_config(state.api_config))
    logger.info("Deploying build %s: %s", state.build.id, ", ".join(built.name for built in selected))
    deployment = api.deploy(
        state.build.id,
        payload,
        post_deployment=post_deployment,
        metadata=deployment_metadata(metadata),
    )
    if not deployment.id:
        raise DeploymentRejectedError(f"Deployment of build {state.build.id} was not created")
    logger.info("Deployment %s created", deployment.id)

    task_status = deployment.status
    if wait:
        if not deployment.task_id:
            raise DeploymentRejectedError(f"Deployment {deployment.id} has no task to wait for")
        logger.info("Waiting for deployment task %s...", deployment.task_id)
        task = wait_for_task(api, deployment.task_id, interval=interval, timeout=timeout, sleep=sleep, clock=clock)
        task_status = task.status

    return DeployResult(
        build_id=state.build.id,
        build_number=state.build.number,
        services=payload,
        deployment_id=deployment.id,
        task_id=deployment.task_id,
        task_status=task_status,
    )


def select_deployable(state: PipelineState, services: Sequence[str]) -> List[BuiltService]:
    if not state.built_services:
        raise NothingReleasedError("No services have been built yet; run `wodby ci build` first")
    released = state.released_services()
    if not released:
        raise NothingReleasedError("No released services found; run `wodby ci release` first")
    if not services:
        return released

    selected = resolve_services(state.built_services, services, error=ServiceNotBuiltError, kind="built service")
    for built in selected:
        if not built.released:
            raise ServiceNotReleasedError(f"Service {built.name} has not been released")
    return selected


def deployment_metadata(metadata: BuildMetadata) -> Dict[str, object]:
    ref_type, ref = git_ref(metadata)
    payload: Dict[str, object] = {
        "buildNum": metadata.number,
        "buildURL": metadata.url,
        "gitRefType": ref_type,
        "gitRef": ref,
    }
    if metadata.provider:
        payload["provider"] = metadata.provider
    if metadata.commit:
        payload["gitCommitSHA"] = metadata.commit
    return payload
