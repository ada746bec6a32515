"""Helpers for values that may or may not be awaitable, and for result sets."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")

MaybeAwaitable = T | Awaitable[T]


async def maybe_await(value: MaybeAwaitable[T]) -> T:
    """Await ``value`` only when it is awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def map_by_keys(
    ids: Sequence[str],
    key: Callable[[T], Any],
    objs: Iterable[T],
) -> list[T | None]:
    """Align an unordered result set with the requested ids.

    The result has one slot per id; ids without a matching object get ``None``.
    """
    index = {str(key(obj)): obj for obj in objs}
    return [index.get(str(i)) for i in ids]
