"""Tests for the per-session write serializer."""

import asyncio

import pytest

from termhub.core.write_queue import WriteQueue


class _SlowWriter:
    def __init__(self) -> None:
        self.chunks: list[bytes] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, data: bytes) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.chunks.append(data)
        self.in_flight -= 1


@pytest.mark.asyncio
async def test_writes_in_order_one_at_a_time() -> None:
    writer = _SlowWriter()
    queue = WriteQueue(writer)
    for i in range(20):
        queue.submit(f"{i};".encode())
    await queue.join()

    assert b"".join(writer.chunks) == b"".join(f"{i};".encode() for i in range(20))
    assert writer.max_in_flight == 1
    assert queue.pending == 0
    assert not queue.is_writing


@pytest.mark.asyncio
async def test_failed_write_does_not_stop_draining(caplog) -> None:
    written: list[bytes] = []

    async def flaky(data: bytes) -> None:
        if data == b"bad":
            raise OSError("EAGAIN")
        written.append(data)

    queue = WriteQueue(flaky, name="s1")
    for chunk in (b"a", b"bad", b"c"):
        queue.submit(chunk)
    await queue.join()

    assert written == [b"a", b"c"]
    assert "PTY write failed" in caplog.text


@pytest.mark.asyncio
async def test_drain_yields_between_chunks() -> None:
    order: list[str] = []

    async def writer(data: bytes) -> None:
        order.append(data.decode())

    async def other() -> None:
        order.append("other")

    queue = WriteQueue(writer)
    queue.submit(b"1")
    queue.submit(b"2")
    queue.submit(b"3")
    other_task = asyncio.create_task(other())
    await queue.join()
    await other_task

    assert order.index("other") < order.index("3")


@pytest.mark.asyncio
async def test_clear_and_close_drop_pending() -> None:
    written: list[bytes] = []

    async def writer(data: bytes) -> None:
        written.append(data)

    queue = WriteQueue(writer)
    queue.submit(b"a")
    queue.submit(b"b")
    assert queue.clear() == 2
    queue.close()
    queue.submit(b"c")
    await queue.join()

    assert written == []
    assert queue.pending == 0
