"""`ci build`: build service images from the pipeline state."""

from __future__ import annotations

import contextlib
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import Settings
from ..docker import DockerClient
from ..errors import ConfigError, ServiceNotFoundError, StateFileError
from ..schemas.state import ServiceDefinition
from ..services import resolve_services
from ..state import load_state, save_state
from .models import BuildInvocation, BuildResult

logger = logging.getLogger(__name__)

DEFAULT_DOCKERIGNORE = ".git\n.gitignore\n.dockerignore\n"

DEFAULT_DOCKERFILE_TEMPLATE = """ARG WODBY_BASE_IMAGE
FROM ${{WODBY_BASE_IMAGE}}
ARG COPY_FROM
ARG COPY_TO
COPY --chown={user}:{user} ${{COPY_FROM}} ${{COPY_TO}}
"""

BASE_IMAGE_ARG = "WODBY_BASE_IMAGE"
COPY_FROM_ARG = "COPY_FROM"
COPY_TO_ARG = "COPY_TO"

_ARG_LINE = re.compile(r"^\s*ARG\s+([A-Za-z_][A-Za-z0-9_]*)(?:=(.*))?\s*$", re.IGNORECASE | re.MULTILINE)


@dataclass(slots=True)
class _BuildGroup:
    base_image: str
    dockerfile: str
    build_args: Dict[str, str]
    dockerignore: Optional[str]
    services: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def tags(self) -> List[str]:
        return [tag for _, tag in self.services]


def default_dockerfile(user: str) -> str:
    return DEFAULT_DOCKERFILE_TEMPLATE.format(user=user)


def dockerfile_args(dockerfile: str) -> Dict[str, Optional[str]]:
    """Map every `ARG` declared in `dockerfile` to its default, or None when it has none."""

    declared: Dict[str, Optional[str]] = {}
    for match in _ARG_LINE.finditer(dockerfile):
        name, default = match.group(1), match.group(2)
        if name not in declared or declared[name] is None:
            declared[name] = default.strip().strip('"') if default is not None else None
    return declared


def build_args_for(
    definition: ServiceDefinition,
    dockerfile: str,
    *,
    copy_from: str,
    copy_to: str,
) -> Dict[str, str]:
    """Resolve build args for one service and its dockerfile.

    Declared args without a default become empty unless the service provides a
    value; the base image and copy source are always passed.
    """

    declared = dockerfile_args(dockerfile)
    args: Dict[str, str] = {}
    for name, default in declared.items():
        if name in definition.build_args:
            args[name] = definition.build_args[name]
        elif default is None:
            args[name] = ""
    for name, value in definition.build_args.items():
        args.setdefault(name, value)

    args[BASE_IMAGE_ARG] = definition.image
    args[COPY_FROM_ARG] = copy_from
    if COPY_TO_ARG in declared:
        args[COPY_TO_ARG] = copy_to
    return args


def build_services(
    services: Sequence[str],
    *,
    settings: Settings,
    copy_from: str = ".",
    copy_to: str = ".",
    dockerfile: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> BuildResult:
    """Build the named services (exact names or `prefix-` patterns).

    Services resolving to the same base image, dockerfile and build args are
    built once with one tag per service.
    """

    if not services:
        raise ServiceNotFoundError("At least one service must be specified")

    state = load_state(settings.state_path)
    definitions = resolve_services(state.service_definitions, services, error=ServiceNotFoundError)
    context = Path(state.context)
    docker = docker or DockerClient()

    custom_dockerfile = _read_dockerfile(context, dockerfile) if dockerfile else None
    default_users: Dict[str, str] = {}

    groups: Dict[Tuple[str, str, Tuple[Tuple[str, str], ...], str], _BuildGroup] = {}
    for definition in definitions:
        content = custom_dockerfile or definition.dockerfile
        if not content:
            if definition.image not in default_users:
                default_users[definition.image] = docker.inspect_default_user(definition.image)
            content = default_dockerfile(default_users[definition.image])
        args = build_args_for(definition, content, copy_from=copy_from, copy_to=copy_to)

        key = (definition.image, content, tuple(sorted(args.items())), definition.dockerignore or "")
        group = groups.get(key)
        if group is None:
            group = groups[key] = _BuildGroup(
                base_image=definition.image,
                dockerfile=content,
                build_args=args,
                dockerignore=definition.dockerignore,
            )
        group.services.append((definition.name, f"{definition.repository}:{state.build.number}"))

    result = BuildResult(state_path=str(settings.state_path))
    for group in groups.values():
        names = [name for name, _ in group.services]
        logger.info("Building image for %s from %s", ", ".join(names), group.base_image)
        with _dockerignore(context, group.dockerignore):
            docker.build(group.dockerfile, group.tags, context, group.build_args)

        for name, tag in group.services:
            state.record_built(name, tag)
            result.built[name] = tag
        save_state(state, settings.state_path)
        result.invocations.append(BuildInvocation(base_image=group.base_image, tags=group.tags, services=names))

    return result


@contextlib.contextmanager
def _dockerignore(context: Path, content: Optional[str]) -> Iterator[None]:
    """Provide a `.dockerignore` for the build unless the context already has one."""

    path = context / ".dockerignore"
    if path.exists():
        yield
        return
    try:
        path.write_text(content or DEFAULT_DOCKERIGNORE, encoding="utf-8")
    except OSError as exc:
        raise StateFileError(f"Failed to write {path}: {exc}") from exc
    try:
        yield
    finally:
        path.unlink(missing_ok=True)


def _read_dockerfile(context: Path, dockerfile: str) -> str:
    path = Path(dockerfile)
    if not path.is_absolute():
        path = context / path
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to read dockerfile {path}: {exc}") from exc
