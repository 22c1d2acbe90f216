from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(slots=True)
class InitResult:
    state_path: str
    build_id: int
    build_number: int
    registry_host: str
    services: List[str]
    data_container: Optional[str] = None
    working_dir: Optional[str] = None
    permissions_fixed: bool = False
    metadata: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "state_path": self.state_path,
            "build_id": self.build_id,
            "build_number": self.build_number,
            "registry_host": self.registry_host,
            "services": self.services,
            "data_container": self.data_container,
            "working_dir": self.working_dir,
            "permissions_fixed": self.permissions_fixed,
            "metadata": self.metadata,
        }


@dataclass(slots=True)
class BuildInvocation:
    base_image: str
    tags: List[str]
    services: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {
            "base_image": self.base_image,
            "tags": self.tags,
            "services": self.services,
        }


@dataclass(slots=True)
class BuildResult:
    state_path: str
    invocations: List[BuildInvocation] = field(default_factory=list)
    built: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "state_path": self.state_path,
            "invocations": [invocation.to_dict() for invocation in self.invocations],
            "built": self.built,
        }


@dataclass(slots=True)
class ReleaseResult:
    state_path: str
    released: List[str] = field(default_factory=list)
    pushed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "state_path": self.state_path,
            "released": self.released,
            "pushed": self.pushed,
        }


@dataclass(slots=True)
class DeployResult:
    build_id: int
    build_number: int
    services: List[Dict[str, str]]
    deployment_id: int
    task_id: Optional[str] = None
    task_status: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "build_id": self.build_id,
            "build_number": self.build_number,
            "services": self.services,
            "deployment_id": self.deployment_id,
            "task_id": self.task_id,
            "task_status": self.task_status,
        }


@dataclass(slots=True)
class RunResult:
    image: str
    command: List[str]
    workdir: Optional[str]

    def to_dict(self) -> Dict[str, object]:
        return {
            "image": self.image,
            "command": self.command,
            "workdir": self.workdir,
        }
