"""Typed results for fetches whose query shape may be unsupported upstream.

Each attempt resolves to ``Ok``, ``SchemaUnsupported`` or ``Fatal``. Callers
iterate ordered query variants on ``SchemaUnsupported`` and re-raise ``Fatal``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar, Union

import httpx

from .grid_client import GridError, GridGraphQLError, is_field_not_found

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")

Classifier = Callable[[GridGraphQLError], bool]


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T
    variant: Any = None


@dataclass(frozen=True)
class SchemaUnsupported:
    reason: str
    error: Optional[GridGraphQLError] = None


@dataclass(frozen=True)
class Fatal:
    error: BaseException


AttemptResult = Union[Ok, SchemaUnsupported, Fatal]


@dataclass(frozen=True)
class Unavailable:
    reasons: List[str] = field(default_factory=list)

    @property
    def note(self) -> str:
        if not self.reasons:
            return "No supported query shape."
        return f"No supported query shape after {len(self.reasons)} attempts: {self.reasons[-1]}"


async def attempt(
    call: Awaitable[T],
    classify: Classifier = is_field_not_found,
    variant: Any = None,
) -> AttemptResult:
    try:
        data = await call
    except GridGraphQLError as exc:
        if classify(exc):
            return SchemaUnsupported(reason=str(exc), error=exc)
        return Fatal(exc)
    except (GridError, httpx.HTTPError) as exc:
        return Fatal(exc)
    return Ok(data, variant)


async def first_supported(
    variants: Sequence[V],
    fetch: Callable[[V], Awaitable[T]],
    classify: Classifier = is_field_not_found,
    label: str = "",
) -> Union[Ok, Unavailable]:
    reasons: List[str] = []
    for index, variant in enumerate(variants):
        result = await attempt(fetch(variant), classify, variant)
        if isinstance(result, Ok):
            if index:
                logger.info(f"[fallback] {label} served by variant #{index + 1}")
            return result
        if isinstance(result, Fatal):
            raise result.error
        reasons.append(result.reason)
        logger.debug(f"[fallback] {label} variant #{index + 1} unsupported: {result.reason}")

    logger.info(f"[fallback] {label} unavailable after {len(reasons)} variants")
    return Unavailable(reasons)
