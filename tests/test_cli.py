from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from wodby_ci import __version__, cli
from wodby_ci.errors import NothingReleasedError
from wodby_ci.metadata import collect_build_metadata
from wodby_ci.stages import init as init_stage
from wodby_ci.stages.models import DeployResult, RunResult
from wodby_ci.state import load_state

from conftest import FakeAPI, FakeDocker


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ("WODBY_API_KEY", "WODBY_ACCESS_TOKEN", "WODBY_API_ENDPOINT", "WODBY_CI_CONFIG_PATH", "WODBY_CI"):
        # Recorded first so values loaded from .env are removed on teardown.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def _run_cli(argv: list[str], capsys: pytest.CaptureFixture[str]) -> tuple[int, Dict[str, Any], str]:
    code = cli.main(argv)
    captured = capsys.readouterr()
    payload = json.loads(captured.out) if code == 0 and captured.out.startswith("{") else {}
    return code, payload, captured.err


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


def test_init_end_to_end_with_fakes(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    api = FakeAPI()
    docker = FakeDocker()
    monkeypatch.setattr(init_stage, "APIClient", lambda config: api)
    monkeypatch.setattr(init_stage, "DockerClient", lambda: docker)
    monkeypatch.setattr(init_stage, "collect_build_metadata", _metadata_without_git)
    state_path = tmp_path / "ci.json"

    code, payload, _ = _run_cli(
        ["--api-key", "key-1", "--ci-config-path", str(state_path), "ci", "init", "42", "-n", "5"],
        capsys,
    )

    assert code == 0
    assert payload["build_id"] == 42
    assert payload["services"] == ["php", "crond", "nginx"]
    assert payload["metadata"]["number"] == "5"
    assert load_state(state_path).api_config.key == "key-1"


def _metadata_without_git(environ, **kwargs):
    kwargs["git"] = lambda args: ""
    return collect_build_metadata({}, **kwargs)


def test_missing_api_key_exits_non_zero(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, _, err = _run_cli(["--ci-config-path", str(tmp_path / "ci.json"), "ci", "init", "42"], capsys)

    assert code == 1
    assert "API key or access token is required" in err
    assert not (tmp_path / "ci.json").exists()


def test_api_key_from_dotenv(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".env").write_text("WODBY_API_KEY=from-dotenv\n", encoding="utf-8")
    seen = {}

    def fake_deploy(services, *, settings, **kwargs):
        seen["settings"] = settings
        seen["kwargs"] = kwargs
        return DeployResult(build_id=1, build_number=2, services=[], deployment_id=3)

    monkeypatch.setattr(cli, "deploy_services", fake_deploy)

    code, payload, _ = _run_cli(["ci", "deploy", "--no-post-deploy", "--wait", "--timeout", "60"], capsys)

    assert code == 0
    assert payload["deployment_id"] == 3
    assert seen["settings"].api_key == "from-dotenv"
    assert seen["kwargs"]["post_deployment"] is False
    assert seen["kwargs"]["wait"] is True
    assert seen["kwargs"]["timeout"] == 60.0


def test_stage_error_is_reported(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def fake_deploy(services, **kwargs):
        raise NothingReleasedError("No released services found")

    monkeypatch.setattr(cli, "deploy_services", fake_deploy)

    code, _, err = _run_cli(["ci", "deploy", "php"], capsys)

    assert code == 1
    assert "No released services found" in err


def test_run_arguments_are_forwarded(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    seen = {}

    def fake_run(command, **kwargs):
        seen["command"] = command
        seen.update(kwargs)
        return RunResult(image="wodby/php", command=list(command), workdir="/app")

    monkeypatch.setattr(cli, "run_container", fake_run)

    code, payload, _ = _run_cli(
        ["ci", "run", "-s", "php", "-v", "/a:/a", "-v", "/b:/b", "-e", "X=1", "-u", "root", "--", "ls", "-la"],
        capsys,
    )

    assert code == 0
    assert seen["command"] == ["ls", "-la"]
    assert seen["service"] == "php"
    assert seen["volumes"] == ["/a:/a", "/b:/b"]
    assert seen["env"] == ["X=1"]
    assert seen["user"] == "root"
    assert payload["workdir"] == "/app"


def test_build_requires_a_service(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(["ci", "build"])


def test_stdout_carries_only_the_result(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def fake_run(command, **kwargs):
        print("Step 1/3 : FROM wodby/php")
        return RunResult(image="wodby/php", command=list(command), workdir="/app")

    monkeypatch.setattr(cli, "run_container", fake_run)

    code = cli.main(["ci", "run", "-i", "wodby/php", "true"])

    captured = capsys.readouterr()
    assert code == 0
    assert json.loads(captured.out)["image"] == "wodby/php"
    assert "Step 1/3" in captured.err
