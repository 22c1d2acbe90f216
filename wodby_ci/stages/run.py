"""`ci run`: run a command in a service image against the build context."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..config import Settings
from ..docker import DockerClient, RunConfig
from ..errors import ServiceNotFoundError
from ..services import resolve_services
from ..state import load_state
from .models import RunResult

logger = logging.getLogger(__name__)


def run_container(
    command: Sequence[str] = (),
    *,
    settings: Settings,
    service: Optional[str] = None,
    image: Optional[str] = None,
    volumes: Sequence[str] = (),
    env: Sequence[str] = (),
    user: Optional[str] = None,
    entrypoint: Optional[str] = None,
    path: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> RunResult:
    """Run `command` in a container with the codebase mounted at its working directory.

    The image is `image` when given, else the base image of `service`, else
    the main service's image. In docker-in-docker mode the codebase comes
    from the data container instead of a bind mount.
    """

    state = load_state(settings.state_path)
    docker = docker or DockerClient()

    if image:
        target = image
    elif service:
        matched = resolve_services(state.service_definitions, [service], error=ServiceNotFoundError)
        if len(matched) != 1:
            names = ", ".join(definition.name for definition in matched)
            raise ServiceNotFoundError(f"Service pattern {service} matches several services: {names}")
        target = matched[0].image
    else:
        main = state.main_service()
        if main is None:
            raise ServiceNotFoundError("No main service in the build config; use --service or --image")
        target = main.image

    if path:
        workdir = path
    elif state.data_container and state.working_dir:
        workdir = state.working_dir
    else:
        workdir = docker.inspect_working_dir(target)

    config = RunConfig(
        image=target,
        volumes=list(volumes),
        env=list(env),
        user=user,
        workdir=workdir,
        entrypoint=entrypoint,
    )
    if state.data_container:
        config.volumes_from.append(state.data_container)
    else:
        config.volumes.insert(0, f"{state.context}:{workdir}")

    logger.info("Running %s in %s", " ".join(command) or "default command", target)
    docker.run(list(command), config)
    return RunResult(image=target, command=list(command), workdir=workdir)
