from __future__ import annotations

import asyncio
import time
from typing import List

from myedge.identity_queue import IdentityQueue


def test_same_identity_runs_in_arrival_order() -> None:
    queue = IdentityQueue()
    order: List[str] = []

    def work(label: str, delay: float) -> str:
        time.sleep(delay)
        order.append(label)
        return label

    async def scenario() -> List[str]:
        first = asyncio.create_task(queue.run("octocat", work, "first", 0.05))
        await asyncio.sleep(0)
        second = asyncio.create_task(queue.run("octocat", work, "second", 0.0))
        await asyncio.sleep(0)
        third = asyncio.create_task(queue.run("octocat", work, "third", 0.0))
        return list(await asyncio.gather(first, second, third))

    results = asyncio.run(scenario())
    assert results == ["first", "second", "third"]
    assert order == ["first", "second", "third"]
    assert queue.pending("octocat") == 0


def test_different_identities_do_not_wait_for_each_other() -> None:
    queue = IdentityQueue()
    order: List[str] = []

    async def scenario() -> None:
        async def slow() -> None:
            async with queue.hold("alice"):
                await asyncio.sleep(0.05)
                order.append("alice")

        async def fast() -> None:
            await asyncio.sleep(0.01)
            async with queue.hold("bob"):
                order.append("bob")

        await asyncio.gather(slow(), fast())

    asyncio.run(scenario())
    assert order == ["bob", "alice"]


def test_cancelled_caller_still_waits_for_write() -> None:
    queue = IdentityQueue()
    finished: List[str] = []

    def write() -> None:
        time.sleep(0.05)
        finished.append("write")

    async def scenario() -> None:
        task = asyncio.create_task(queue.run("octocat", write))
        await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await queue.run("octocat", finished.append, "next")

    asyncio.run(scenario())
    assert finished == ["write", "next"]
