"""Adapter around the docker CLI."""

from __future__ import annotations

import logging
import subprocess
import sys
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, List, Mapping, Optional, Sequence

from .errors import ExecError

logger = logging.getLogger(__name__)

ROOT_USER = "root"


@dataclass(slots=True)
class RunConfig:
    image: str
    volumes: List[str] = field(default_factory=list)
    volumes_from: List[str] = field(default_factory=list)
    env: List[str] = field(default_factory=list)
    user: Optional[str] = None
    workdir: Optional[str] = None
    entrypoint: Optional[str] = None


class DockerClient:
    """Runs docker CLI commands.

    Long-running commands (build, push, pull, tag, run) stream their output to
    the given streams while buffering it for error reports; short queries
    capture combined output. Any non-zero exit raises `ExecError`.
    """

    def __init__(
        self,
        executable: str = "docker",
        *,
        stdout: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
    ) -> None:
        self.executable = executable
        self.stdout = stdout
        self.stderr = stderr

    def login(self, host: str, username: str, password: str) -> None:
        logger.info("Logging in to registry %s as %s", host, username)
        self._capture(["login", "--username", username, "--password-stdin", host], input_text=password)

    def build(
        self,
        dockerfile: str,
        tags: Sequence[str],
        context: str | Path,
        build_args: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Build one image from `dockerfile` content and apply every tag to it."""

        context_path = Path(context)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=str(context_path),
            prefix=".wodby-",
            suffix=".Dockerfile",
            delete=False,
        )
        dockerfile_path = Path(handle.name)
        try:
            with handle:
                handle.write(dockerfile)
            args = ["build"]
            for tag in tags:
                args.extend(["-t", tag])
            for name, value in sorted((build_args or {}).items()):
                args.extend(["--build-arg", f"{name}={value}"])
            args.extend(["-f", str(dockerfile_path), str(context_path)])
            logger.info("Building:\n docker %s", " ".join(args))
            self._stream(args)
        finally:
            dockerfile_path.unlink(missing_ok=True)

    def push(self, image: str) -> None:
        logger.info("Pushing:\n docker push %s", image)
        self._stream(["push", image])

    def pull(self, image: str) -> None:
        logger.info("Pulling:\n docker pull %s", image)
        self._stream(["pull", image])

    def tag(self, source: str, target: str) -> None:
        logger.info("Tagging:\n docker tag %s %s", source, target)
        self._stream(["tag", source, target])

    def inspect_default_user(self, image: str) -> str:
        """Default user of `image`; an unset user means root."""

        self.pull(image)
        user = self._capture(["image", "inspect", image, "-f", "{{.Config.User}}"]).strip()
        return user or ROOT_USER

    def inspect_working_dir(self, image: str) -> str:
        """Working directory of `image`; unset means `/`."""

        self.pull(image)
        workdir = self._capture(["image", "inspect", image, "-f", "{{.Config.WorkingDir}}"]).strip()
        return workdir or "/"

    def create_data_container(self, name: str, volume: str, image: str = "alpine") -> None:
        """Create a stopped container whose `volume` is shared with later runs."""

        self.pull(image)
        self._capture(["create", f"--volume={volume}", f"--name={name}", image, "/bin/true"])

    def copy_into(self, source: str | Path, container: str, destination: str) -> None:
        self._capture(["cp", f"{source}/.", f"{container}:{destination}"])

    def run(self, command: Sequence[str], config: RunConfig) -> None:
        args = run_arguments(command, config)
        logger.info("Running:\n docker %s", " ".join(args))
        self._stream(args)

    def _stream(self, args: Sequence[str]) -> str:
        return stream_command(
            [self.executable, *args],
            stdout=self.stdout or sys.stdout,
            stderr=self.stderr or sys.stderr,
        )

    def _capture(self, args: Sequence[str], *, input_text: Optional[str] = None) -> str:
        return capture_command([self.executable, *args], input_text=input_text)


def run_arguments(command: Sequence[str], config: RunConfig) -> List[str]:
    """Assemble `docker run` arguments for `config` followed by `command`."""

    args = ["run", "--rm"]
    args.extend(f"--volumes-from={name}" for name in config.volumes_from)
    args.extend(f"--volume={volume}" for volume in config.volumes)
    args.extend(f"--env={pair}" for pair in config.env)
    if config.user:
        args.append(f"--user={config.user}")
    if config.workdir:
        args.append(f"--workdir={config.workdir}")
    if config.entrypoint:
        args.append(f"--entrypoint={config.entrypoint}")
    args.append(config.image)
    args.extend(command)
    return args


def capture_command(command: Sequence[str], *, input_text: Optional[str] = None) -> str:
    """Run `command` and return its combined stdout and stderr."""

    try:
        proc = subprocess.run(
            list(command),
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise ExecError(command, -1, str(exc)) from exc
    if proc.returncode != 0:
        raise ExecError(command, proc.returncode, proc.stdout or "")
    return proc.stdout or ""


def stream_command(command: Sequence[str], *, stdout: IO[str], stderr: IO[str]) -> str:
    """Run `command`, copying its output live to `stdout`/`stderr`.

    Returns the combined output; raises `ExecError` with it on failure.
    """

    try:
        proc = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            bufsize=1,
        )
    except OSError as exc:
        raise ExecError(command, -1, str(exc)) from exc

    lines: List[str] = []
    lock = threading.Lock()
    pumps = [
        threading.Thread(target=_pump, args=(proc.stdout, stdout, lines, lock), daemon=True),
        threading.Thread(target=_pump, args=(proc.stderr, stderr, lines, lock), daemon=True),
    ]
    for pump in pumps:
        pump.start()
    returncode = proc.wait()
    for pump in pumps:
        pump.join()

    output = "".join(lines)
    if returncode != 0:
        raise ExecError(command, returncode, output)
    return output


def _pump(source: Optional[IO[str]], target: IO[str], lines: List[str], lock: threading.Lock) -> None:
    if source is None:
        return
    with source:
        for line in iter(source.readline, ""):
            with lock:
                lines.append(line)
                target.write(line)
                target.flush()
