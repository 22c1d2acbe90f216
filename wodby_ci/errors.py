"""Error types raised by the CI pipeline stages."""

from __future__ import annotations

from typing import Optional, Sequence


class WodbyCIError(RuntimeError):
    """Base class for every known pipeline failure."""


class ConfigError(WodbyCIError):
    """Required configuration (API credentials, endpoint) is missing or invalid."""


class StateFileError(WodbyCIError):
    """The pipeline state file cannot be read or written."""


class StateNotFoundError(StateFileError):
    """The state file does not exist; `init` has not run in this workspace."""


class StateParseError(StateFileError):
    """The state file exists but is not a valid pipeline state document."""


class ServiceNotFoundError(WodbyCIError):
    """A requested service is not part of the build configuration."""


class ServiceNotBuiltError(WodbyCIError):
    """A requested service has no built image in the current pipeline."""


class NothingReleasedError(WodbyCIError):
    """Deploy was requested but no built service has been released."""


class ServiceNotReleasedError(WodbyCIError):
    """A service named for deployment was built but never released."""


class DeploymentRejectedError(WodbyCIError):
    """The API accepted the deploy request but returned no deployment."""


class APIError(WodbyCIError):
    """A remote API call failed or returned an error envelope."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExecError(WodbyCIError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        message = f"Command failed (exit {returncode}): {' '.join(self.command)}"
        if output.strip():
            message = f"{message}\n{output.strip()}"
        super().__init__(message)


class TaskFailedError(WodbyCIError):
    """A polled task finished with the Failed status."""


class TaskCanceledError(WodbyCIError):
    """A polled task finished with the Canceled status."""


class TaskTimeoutError(WodbyCIError):
    """A polled task did not reach a terminal status in time."""


__all__ = [
    "APIError",
    "ConfigError",
    "DeploymentRejectedError",
    "ExecError",
    "NothingReleasedError",
    "ServiceNotBuiltError",
    "ServiceNotFoundError",
    "ServiceNotReleasedError",
    "StateFileError",
    "StateNotFoundError",
    "StateParseError",
    "TaskCanceledError",
    "TaskFailedError",
    "TaskTimeoutError",
    "WodbyCIError",
]
