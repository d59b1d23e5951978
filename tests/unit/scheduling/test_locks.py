import asyncio

import pytest

from vetclinic.scheduling.locks import KeyedLocks


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_serializes_holders_of_the_same_key(self) -> None:
        locks: KeyedLocks[str] = KeyedLocks()
        order = []

        async def work(name: str) -> None:
            async with locks.hold("a-1"):
                order.append(f"{name} in")
                await asyncio.sleep(0.01)
                order.append(f"{name} out")

        await asyncio.gather(work("first"), work("second"))

        assert order == ["first in", "first out", "second in", "second out"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self) -> None:
        locks: KeyedLocks[str] = KeyedLocks()

        async with locks.hold("a-1"):
            await asyncio.wait_for(self._enter(locks, "a-2"), timeout=0.5)

    @pytest.mark.asyncio
    async def test_entry_dropped_after_release(self) -> None:
        locks: KeyedLocks[tuple[str, int]] = KeyedLocks()

        async with locks.hold(("vet-1", 1)):
            assert ("vet-1", 1) in locks

        assert ("vet-1", 1) not in locks
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_entry_kept_while_someone_waits(self) -> None:
        locks: KeyedLocks[str] = KeyedLocks()
        release_first, release_second = asyncio.Event(), asyncio.Event()

        async def holder(release: asyncio.Event) -> None:
            async with locks.hold("a-1"):
                await release.wait()

        first = asyncio.create_task(holder(release_first))
        await asyncio.sleep(0)
        second = asyncio.create_task(holder(release_second))
        await asyncio.sleep(0)
        release_first.set()
        await first

        assert "a-1" in locks
        release_second.set()
        await second
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_when_body_raises(self) -> None:
        locks: KeyedLocks[str] = KeyedLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("a-1"):
                raise RuntimeError("boom")

        assert len(locks) == 0

    @staticmethod
    async def _enter(locks: KeyedLocks[str], key: str) -> None:
        async with locks.hold(key):
            pass
