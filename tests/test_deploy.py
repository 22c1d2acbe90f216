from __future__ import annotations

import pytest

from wodby_ci.api.models import Deployment
from wodby_ci.config import Settings
from wodby_ci.errors import (
    DeploymentRejectedError,
    NothingReleasedError,
    ServiceNotReleasedError,
    TaskFailedError,
)
from wodby_ci.stages import deploy_services

from conftest import FakeAPI, built

RELEASED = [
    built("php", "wodby/app/php:17", released=True),
    built("crond", "wodby/app/crond:17"),
    built("nginx", "wodby/app/nginx:17", released=True),
]


def test_deploys_only_released_services(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    api = FakeAPI()

    result = deploy_services(settings=settings, api=api)

    (_, build_id, services, post_deployment, metadata), = api.calls
    assert build_id == 42
    assert services == [
        {"name": "php", "image": "wodby/app/php:17"},
        {"name": "nginx", "image": "wodby/app/nginx:17"},
    ]
    assert post_deployment is False
    assert metadata["gitRef"] == "master"
    assert result.deployment_id == 7
    assert result.task_id == "task-1"


def test_deploy_does_not_modify_state(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    before = settings.state_path.read_bytes()

    deploy_services(settings=settings, api=FakeAPI(), build_number="99")

    assert settings.state_path.read_bytes() == before


def test_nothing_built(settings: Settings, write_state) -> None:
    write_state()
    with pytest.raises(NothingReleasedError):
        deploy_services(settings=settings, api=FakeAPI())


def test_nothing_released(settings: Settings, write_state) -> None:
    write_state(built_services=[built("php", "wodby/app/php:17")])
    api = FakeAPI()
    with pytest.raises(NothingReleasedError):
        deploy_services(settings=settings, api=api)
    assert api.calls == []


def test_named_service_must_be_released(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    with pytest.raises(ServiceNotReleasedError, match="crond"):
        deploy_services(["php", "crond"], settings=settings, api=FakeAPI())


def test_metadata_overrides_and_post_deploy(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    api = FakeAPI()

    deploy_services(
        ["nginx"],
        settings=settings,
        api=api,
        build_number="99",
        build_url="https://ci.example.test/99",
        tag="v1.0.0",
        post_deployment=True,
    )

    (_, _, services, post_deployment, metadata), = api.calls
    assert services == [{"name": "nginx", "image": "wodby/app/nginx:17"}]
    assert post_deployment is True
    assert metadata["buildNum"] == "99"
    assert metadata["buildURL"] == "https://ci.example.test/99"
    assert (metadata["gitRefType"], metadata["gitRef"]) == ("tag", "v1.0.0")


def test_empty_deployment_is_rejected(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    with pytest.raises(DeploymentRejectedError):
        deploy_services(settings=settings, api=FakeAPI(deployment=Deployment()))


def test_wait_polls_task(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    api = FakeAPI(statuses=["Waiting", "In progress", "Done"])
    sleeps = []

    result = deploy_services(settings=settings, api=api, wait=True, interval=1.0, sleep=sleeps.append)

    assert [call[0] for call in api.calls] == ["deploy", "get_task", "get_task", "get_task"]
    assert sleeps == [1.0, 1.0]
    assert result.task_status == "Done"


def test_wait_reports_failed_task(settings: Settings, write_state) -> None:
    write_state(built_services=RELEASED)
    with pytest.raises(TaskFailedError):
        deploy_services(settings=settings, api=FakeAPI(statuses=["Failed"]), wait=True, sleep=lambda _: None)
