"""Ordered fallback across unreliable upstream sources."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from .telemetry import emit_event

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"

Q = TypeVar("Q")
T = TypeVar("T")

Source = Callable[[Q], Awaitable[Optional[T]]]


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """Result of a fallback chain.

    ``degraded`` is set when the value did not come from the first source;
    ``source`` is ``"fallback"`` when every source failed and the static
    default was returned.
    """

    value: T
    source: str
    degraded: bool
    errors: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_default(self) -> bool:
        return self.source == FALLBACK_SOURCE


class FallbackChain(Generic[Q, T]):
    """Try each source in order; return the static default when all fail.

    A source fails by raising or by returning ``None``. ``fetch`` never raises
    for upstream failures.
    """

    def __init__(
        self,
        name: str,
        sources: Sequence[Tuple[str, Source]],
        default: Callable[[Q], T],
        *,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.name = name
        self._sources = list(sources)
        self._default = default
        self._timeout = timeout_seconds

    async def fetch(self, query: Q, *, skip: Sequence[str] = ()) -> FetchOutcome[T]:
        errors: List[str] = []
        for position, (source_name, source) in enumerate(self._sources):
            if source_name in skip:
                continue
            try:
                call = source(query)
                value = await (asyncio.wait_for(call, self._timeout) if self._timeout else call)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning("%s source %s failed for %r: %s", self.name, source_name, query, exc)
                errors.append(f"{source_name}: {exc or type(exc).__name__}")
                continue
            if value is None:
                errors.append(f"{source_name}: no result")
                continue
            return FetchOutcome(
                value=value,
                source=source_name,
                degraded=position > 0,
                errors=tuple(errors),
            )

        emit_event("upstream_degraded", chain=self.name, query=str(query), errors=list(errors))
        return FetchOutcome(
            value=self._default(query),
            source=FALLBACK_SOURCE,
            degraded=True,
            errors=tuple(errors),
        )


__all__ = ["FALLBACK_SOURCE", "FallbackChain", "FetchOutcome"]
