"""
Partial-failure helpers for view assembly.

Each item is turned into an optional value and failures are filtered out,
so one bad record or one failed lookup never voids the whole view.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def attempt(transform: Callable[[T], R], item: T, label: str) -> Optional[R]:
    """
    Apply transform to one item.

    Returns:
        The transformed value, or None if transform raised (logged)
    """
    try:
        return transform(item)
    except Exception as e:
        logger.warning(
            f"Dropping {label}: {e}",
            extra={"extra_data": {
                "item": label,
                "error_type": type(e).__name__,
                "item_id": getattr(item, "id", None),
            }},
        )
        return None


def keep_successful(items: Iterable[T], transform: Callable[[T], R], label: str) -> List[R]:
    """Transform every item, keeping order and dropping the ones that fail."""
    results = []
    for item in items:
        value = attempt(transform, item, label)
        if value is not None:
            results.append(value)
    return results


async def gather_optional(
    awaitables: Sequence[Awaitable[Optional[R]]],
    labels: Sequence[str],
) -> List[Optional[R]]:
    """
    Await all awaitables concurrently.

    Returns:
        One entry per awaitable, in order: its result, or None if it raised
    """
    results: List[Any] = await asyncio.gather(*awaitables, return_exceptions=True)

    resolved: List[Optional[R]] = []
    for label, result in zip(labels, results):
        if isinstance(result, BaseException):
            logger.warning(
                f"Lookup failed for {label}: {type(result).__name__}: {result}",
                extra={"extra_data": {"item": label, "error_type": type(result).__name__}},
            )
            resolved.append(None)
        else:
            resolved.append(result)
    return resolved
