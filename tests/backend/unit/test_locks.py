"""
Unit tests for core.locks module.
"""
import asyncio

import pytest

from app.core.locks import KeyedLock


pytestmark = pytest.mark.asyncio


async def test_same_key_is_serialised():
    locks = KeyedLock()
    inside = 0
    max_inside = 0

    async def worker():
        nonlocal inside, max_inside
        async with locks.hold("dev-A"):
            inside += 1
            max_inside = max(max_inside, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(*(worker() for _ in range(5)))
    assert max_inside == 1


async def test_different_keys_run_concurrently():
    locks = KeyedLock()
    both_inside = asyncio.Event()
    entered = []

    async def worker(key):
        async with locks.hold(key):
            entered.append(key)
            if len(entered) == 2:
                both_inside.set()
            await asyncio.wait_for(both_inside.wait(), timeout=1)

    await asyncio.gather(worker("dev-A"), worker("dev-B"))
    assert sorted(entered) == ["dev-A", "dev-B"]


async def test_registry_is_emptied_after_release():
    locks = KeyedLock()
    async with locks.hold("dev-A"):
        assert len(locks) == 1
    assert len(locks) == 0


async def test_lock_released_when_body_raises():
    locks = KeyedLock()
    with pytest.raises(RuntimeError):
        async with locks.hold("dev-A"):
            raise RuntimeError("boom")
    async with locks.hold("dev-A"):
        pass
    assert len(locks) == 0


async def test_nested_hold_in_same_task_does_not_block():
    locks = KeyedLock()

    async def nested():
        async with locks.hold("dev-A"):
            async with locks.hold("dev-A"):
                assert locks.held_by_current_task("dev-A")
        return "done"

    assert await asyncio.wait_for(nested(), timeout=1) == "done"
    assert len(locks) == 0


async def test_other_tasks_still_wait_for_reentrant_holder():
    locks = KeyedLock()
    order = []
    release = asyncio.Event()

    async def holder():
        async with locks.hold("dev-A"):
            async with locks.hold("dev-A"):
                order.append("holder")
                await release.wait()
            # Still held by the outer block
            await asyncio.sleep(0.01)
            order.append("holder-exit")

    async def contender():
        async with locks.hold("dev-A"):
            assert locks.held_by_current_task("dev-A")
            order.append("contender")

    first = asyncio.create_task(holder())
    await asyncio.sleep(0)
    second = asyncio.create_task(contender())
    await asyncio.sleep(0.01)
    assert order == ["holder"]
    release.set()
    await asyncio.gather(first, second)
    assert order == ["holder", "holder-exit", "contender"]
