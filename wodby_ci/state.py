"""Pipeline state store: the JSON document shared by all CI stages."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .errors import StateFileError, StateNotFoundError, StateParseError
from .schemas.state import PipelineState

logger = logging.getLogger(__name__)

STATE_FILE_MODE = 0o600


def load_state(path: Path) -> PipelineState:
    """Load the pipeline state written by a previous stage."""

    if not path.exists():
        raise StateNotFoundError(f"CI config not found at {path}; run `wodby ci init` first.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise StateParseError(f"Invalid CI config at {path}: {exc}") from exc
    except OSError as exc:
        raise StateFileError(f"Failed to read CI config at {path}: {exc}") from exc
    try:
        return PipelineState.model_validate(payload)
    except ValidationError as exc:
        raise StateParseError(f"Invalid CI config at {path}: {exc}") from exc


def dump_state(state: PipelineState) -> str:
    payload = state.model_dump(mode="json", by_alias=True)
    return json.dumps(payload, indent=4, sort_keys=True) + "\n"


def save_state(state: PipelineState, path: Path) -> None:
    """Write the state atomically with owner-only permissions.

    The document carries registry and API credentials.
    """

    content = dump_state(state)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(tmp_path, STATE_FILE_MODE)
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise StateFileError(f"Failed to write CI config at {path}: {exc}") from exc
    logger.debug("CI config written to %s", path)
