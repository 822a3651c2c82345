from __future__ import annotations

import asyncio
from typing import List, Optional

from myedge.fallback import FallbackChain
from myedge.telemetry import TelemetryEvent, clear_listeners, register_listener


def _collect() -> List[TelemetryEvent]:
    events: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    return events


def test_first_successful_source_wins() -> None:
    calls: List[str] = []

    async def primary(query: str) -> Optional[str]:
        calls.append("primary")
        return f"primary:{query}"

    async def secondary(query: str) -> Optional[str]:
        calls.append("secondary")
        return f"secondary:{query}"

    chain = FallbackChain("test", [("primary", primary), ("secondary", secondary)], lambda q: "default")
    outcome = asyncio.run(chain.fetch("x"))
    assert outcome.value == "primary:x"
    assert outcome.source == "primary"
    assert not outcome.degraded
    assert calls == ["primary"]


def test_exceptions_and_none_fall_through_in_order() -> None:
    async def broken(query: str) -> Optional[str]:
        raise RuntimeError("boom")

    async def empty(query: str) -> Optional[str]:
        return None

    async def working(query: str) -> Optional[str]:
        return "ok"

    chain = FallbackChain("test", [("broken", broken), ("empty", empty), ("working", working)], lambda q: "default")
    outcome = asyncio.run(chain.fetch("x"))
    assert outcome.value == "ok"
    assert outcome.source == "working"
    assert outcome.degraded
    assert outcome.errors == ("broken: boom", "empty: no result")


def test_all_failures_return_default_and_emit_event() -> None:
    events = _collect()

    async def broken(query: str) -> Optional[str]:
        raise ValueError("bad payload")

    chain = FallbackChain("weather", [("broken", broken)], lambda q: f"default:{q}")
    outcome = asyncio.run(chain.fetch("Paris"))
    assert outcome.value == "default:Paris"
    assert outcome.source == "fallback"
    assert outcome.is_default
    assert [event.name for event in events] == ["upstream_degraded"]
    assert events[0].payload["chain"] == "weather"
    clear_listeners()


def test_timeouts_count_as_failures() -> None:
    async def slow(query: str) -> Optional[str]:
        await asyncio.sleep(1)
        return "late"

    chain = FallbackChain("test", [("slow", slow)], lambda q: "default", timeout_seconds=0.01)
    outcome = asyncio.run(chain.fetch("x"))
    assert outcome.value == "default"


def test_skipped_primary_is_not_called_and_result_is_degraded() -> None:
    async def primary(query: str) -> Optional[str]:
        raise AssertionError("should be skipped")

    async def secondary(query: str) -> Optional[str]:
        return "secondary"

    chain = FallbackChain("test", [("primary", primary), ("secondary", secondary)], lambda q: "default")
    outcome = asyncio.run(chain.fetch("x", skip=("primary",)))
    assert outcome.source == "secondary"
    assert outcome.degraded
    assert outcome.errors == ()
