"""Process-level settings for the CI commands.

Settings are assembled once at startup from command-line flags, the process
environment and an optional `.env` file, then passed explicitly to each stage.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .schemas.state import APIConfig

DEFAULT_API_ENDPOINT = "https://api.wodby.com/query"
DEFAULT_STATE_PATH = "/tmp/.wodby-ci.json"
ENV_PREFIX = "WODBY_"


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    access_token: str = ""
    # Empty means "not given"; the stored or default endpoint applies.
    api_endpoint: str = ""
    state_path: Path = Path(DEFAULT_STATE_PATH)
    verbose: bool = False
    ci: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            api_key=env.get(f"{ENV_PREFIX}API_KEY", ""),
            access_token=env.get(f"{ENV_PREFIX}ACCESS_TOKEN", ""),
            api_endpoint=env.get(f"{ENV_PREFIX}API_ENDPOINT", ""),
            state_path=Path(env.get(f"{ENV_PREFIX}CI_CONFIG_PATH", "") or DEFAULT_STATE_PATH),
            verbose=_to_bool(env.get(f"{ENV_PREFIX}VERBOSE")) or _to_bool(env.get("DEBUG")),
            ci=_to_bool(env.get(f"{ENV_PREFIX}CI")),
        )

    def with_overrides(
        self,
        *,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        api_endpoint: Optional[str] = None,
        state_path: Optional[str | Path] = None,
        verbose: Optional[bool] = None,
    ) -> "Settings":
        """Return a copy where every non-empty override replaces the current value."""

        changes: dict[str, object] = {}
        if api_key:
            changes["api_key"] = api_key
        if access_token:
            changes["access_token"] = access_token
        if api_endpoint:
            changes["api_endpoint"] = api_endpoint
        if state_path:
            changes["state_path"] = Path(state_path)
        if verbose:
            changes["verbose"] = True
        return replace(self, **changes)

    def api_config(self, stored: Optional[APIConfig] = None) -> APIConfig:
        """Merge process settings over the API config stored in the pipeline state."""

        base = stored or APIConfig()
        return APIConfig(
            key=self.api_key or base.key,
            access_token=self.access_token or base.access_token,
            endpoint=self.api_endpoint or base.endpoint or DEFAULT_API_ENDPOINT,
        )


def require_api_config(config: APIConfig) -> APIConfig:
    """Fail before any side effect when the API cannot be reached."""

    if not config.key and not config.access_token:
        raise ConfigError(
            "API key or access token is required (use --api-key / WODBY_API_KEY "
            "or --access-token / WODBY_ACCESS_TOKEN)."
        )
    if not config.endpoint:
        raise ConfigError("API endpoint is required (use --api-endpoint / WODBY_API_ENDPOINT).")
    return config


def load_local_env(path: Optional[str | Path] = None) -> bool:
    """Load a working-directory `.env` without overriding the real environment."""

    env_file = Path(path) if path else Path.cwd() / ".env"
    if not env_file.exists():
        return False
    return load_dotenv(env_file, override=False)


def _to_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
