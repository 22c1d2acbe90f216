"""Helpers for image references (`[registry/]repository[:tag]`)."""

from __future__ import annotations

import re

_INVALID_TAG_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def split_tag(image: str) -> tuple[str, str]:
    """Split `image` into `(repository, tag)`; the tag is empty when absent.

    A colon followed by a path (`host:5000/app`) is a registry port, not a tag.
    """

    repository, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, ""
    return repository, tag


def replace_tag(image: str, tag: str) -> str:
    repository, _ = split_tag(image)
    return f"{repository}:{tag}"


def sanitize_tag(value: str) -> str:
    """Turn a git ref such as `feature/login` into a valid docker tag."""

    cleaned = _INVALID_TAG_CHARS.sub("-", value.replace("/", "-")).lstrip(".-")
    return cleaned[:128]


def registry_tag(registry: str, slug: str, tag: str) -> str:
    """Retarget a service image into a custom registry.

    `registry` is given as `host/project`; only the last segment of the
    service slug (its unique image name) is kept.
    """

    name = slug.rstrip("/").split("/")[-1]
    return f"{registry.rstrip('/')}/{name}:{tag}"
