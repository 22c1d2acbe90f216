"""Service name resolution shared by the stages."""

from __future__ import annotations

from typing import Callable, Iterable, List, Sequence, Type, TypeVar

from .errors import WodbyCIError

T = TypeVar("T")


def matches(name: str, pattern: str) -> bool:
    """Exact name, or every name with the prefix when the pattern ends with `-`."""

    if name == pattern:
        return True
    return pattern.endswith("-") and name.startswith(pattern)


def resolve_services(
    items: Sequence[T],
    patterns: Iterable[str],
    *,
    name_of: Callable[[T], str] = lambda item: item.name,  # type: ignore[attr-defined]
    error: Type[WodbyCIError],
    kind: str = "service",
) -> List[T]:
    """Return the items selected by `patterns`, in pattern order, without duplicates.

    Raises `error` for the first pattern that selects nothing.
    """

    selected: List[T] = []
    seen: set[str] = set()
    for pattern in patterns:
        found = [item for item in items if matches(name_of(item), pattern)]
        if not found:
            if pattern.endswith("-"):
                raise error(f"No {kind}s found with prefix {pattern}")
            raise error(f"Couldn't find {kind} {pattern}")
        for item in found:
            name = name_of(item)
            if name not in seen:
                seen.add(name)
                selected.append(item)
    return selected
