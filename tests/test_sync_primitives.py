from __future__ import annotations

import asyncio

import pytest

from wfm_rolesync.sync.backoff import CancellationToken, linear_delay
from wfm_rolesync.sync.locks import KeyedLock


def test_linear_delay() -> None:
    assert linear_delay(1, 1.0) == 1.0
    assert linear_delay(2, 1.5) == 3.0
    assert linear_delay(0, 1.0) == 0.0


@pytest.mark.asyncio
async def test_sleep_elapses() -> None:
    assert await CancellationToken().sleep(0.01) is True


@pytest.mark.asyncio
async def test_sleep_returns_early_on_cancel() -> None:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, token.cancel)

    started = loop.time()
    assert await token.sleep(30) is False
    assert loop.time() - started < 5
    assert token.cancelled


@pytest.mark.asyncio
async def test_sleep_after_cancel_is_immediate() -> None:
    token = CancellationToken()
    token.cancel()
    assert await token.sleep(30) is False


@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key() -> None:
    locks = KeyedLock()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("a@x.com"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("one"), worker("two"))

    assert order in (
        ["one-in", "one-out", "two-in", "two-out"],
        ["two-in", "two-out", "one-in", "one-out"],
    )
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_allows_different_keys() -> None:
    locks = KeyedLock()
    inside = asyncio.Event()

    async def hold_a() -> None:
        async with locks.hold("a@x.com"):
            await inside.wait()

    task = asyncio.create_task(hold_a())
    await asyncio.sleep(0)
    async with locks.hold("b@x.com"):
        assert len(locks) == 2
        inside.set()
    await task
    assert len(locks) == 0
