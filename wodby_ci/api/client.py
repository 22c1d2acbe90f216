"""Wodby GraphQL API client."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError
from requests import Response, Session
from requests.exceptions import RequestException

from ..config import require_api_config
from ..errors import APIError, NothingReleasedError
from ..schemas.state import APIConfig, RegistryCredentials
from . import queries
from .models import AppBuild, Deployment, Task

logger = logging.getLogger(__name__)

USER_AGENT = "wodby-ci"

ModelT = TypeVar("ModelT", bound=BaseModel)


class APIClient:
    """Runs authorized GraphQL operations against the configured endpoint."""

    def __init__(
        self,
        config: APIConfig,
        *,
        session: Optional[Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.config = require_api_config(config)
        self.session = session or requests.Session()
        self.timeout = timeout

    def get_app_build(self, build_id: int) -> AppBuild:
        data = self.execute(queries.APP_BUILD, {"id": build_id}, operation="appBuild")
        return self._model(AppBuild, data, "appBuild")

    def new_ci_build(self, app_instance_id: str, build_input: Mapping[str, object]) -> AppBuild:
        variables = {"input": {"appInstanceID": app_instance_id, **build_input}}
        data = self.execute(queries.NEW_CI_BUILD, variables, operation="newCIBuild")
        return self._model(AppBuild, data, "appBuild")

    def get_registry_credentials(self, build_id: int) -> RegistryCredentials:
        data = self.execute(
            queries.DOCKER_REGISTRY_CREDENTIALS,
            {"appBuildID": build_id},
            operation="dockerRegistryCredentials",
        )
        return self._model(RegistryCredentials, data, "dockerRegistryCredentials")

    def deploy(
        self,
        build_id: int,
        services: Sequence[Mapping[str, str]],
        *,
        post_deployment: bool = False,
        metadata: Optional[Mapping[str, object]] = None,
    ) -> Deployment:
        """Deploy `services` (`{name, image}` pairs) of a build.

        `metadata` adds build provenance (number, url, git ref) to the request.
        """

        if not services:
            raise NothingReleasedError("At least one service is required for a deployment.")
        deployment_input: Dict[str, object] = {
            "appBuildID": build_id,
            "services": [{"name": item["name"], "image": item["image"]} for item in services],
            "postDeployment": post_deployment,
        }
        if metadata:
            deployment_input["metadata"] = dict(metadata)
        variables = {"input": deployment_input}
        data = self.execute(queries.DEPLOY, variables, operation="deploy")
        if data.get("appDeployment") is None:
            return Deployment()
        return self._model(Deployment, data, "appDeployment")

    def get_task(self, task_id: str) -> Task:
        data = self.execute(queries.TASK, {"id": task_id}, operation="task")
        return self._model(Task, data, "task")

    def execute(self, query: str, variables: Mapping[str, Any], *, operation: str) -> Dict[str, Any]:
        """POST one GraphQL document and return its `data` object."""

        logger.debug("Exec %s request [variables: %s]", operation, dict(variables))
        try:
            response: Response = self.session.post(
                self.config.endpoint,
                headers=self._headers(),
                json={"query": query, "variables": dict(variables)},
                timeout=self.timeout,
            )
        except RequestException as exc:
            raise APIError(f"{operation} request failed: {exc}") from exc

        payload = _decode(response, operation)
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self.config.key:
            headers["X-API-KEY"] = self.config.key
        else:
            headers["X-ACCESS-TOKEN"] = self.config.access_token
        return headers

    @staticmethod
    def _model(model: Type[ModelT], data: Mapping[str, Any], field: str) -> ModelT:
        value = data.get(field)
        if value is None:
            raise APIError(f"{field} response is empty")
        try:
            return model.model_validate(value)
        except ValidationError as exc:
            raise APIError(f"{field} response has unexpected format: {exc}") from exc


def _decode(response: Response, operation: str) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not 200 <= response.status_code < 300:
        message = _error_message(payload) or f"{response.status_code} {response.reason}"
        raise APIError(f"{operation} failed: {message}", status_code=response.status_code)

    if not isinstance(payload, dict):
        raise APIError(f"{operation} failed: response body parsing failed", status_code=response.status_code)

    message = _error_message(payload)
    if message:
        raise APIError(f"{operation} failed: {message}", status_code=response.status_code)
    return payload


def _error_message(payload: object) -> Optional[str]:
    """Extract the message from `{error: {message}}` or GraphQL `{errors: [{message}]}`."""

    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        messages = [str(item.get("message")) for item in errors if isinstance(item, dict) and item.get("message")]
        if messages:
            return "; ".join(messages)
    return None
