"""
Archive Hand-off Tests
======================

Drop-on-full admission, close semantics and cancellable waits.
"""

import asyncio

import pytest

from mjpeg_service.stream.buffer import ArchiveHandoff
from mjpeg_service.stream.frame import Frame


def frame(ts: int) -> Frame:
    return Frame(timestamp_ms=ts, data=b"jpeg")


class TestAdmission:
    """Tests for non-blocking try_put."""

    def test_rejects_invalid_size(self):
        with pytest.raises(ValueError):
            ArchiveHandoff(maxsize=0)

    @pytest.mark.asyncio
    async def test_drops_new_frame_when_full(self):
        handoff = ArchiveHandoff(maxsize=2)

        assert handoff.try_put(frame(1))
        assert handoff.try_put(frame(2))
        assert not handoff.try_put(frame(3))

        assert handoff.dropped_count == 1
        assert handoff.total_put == 2
        # Oldest frames are kept, the newcomer is the one dropped
        assert handoff.get_nowait().timestamp_ms == 1
        assert handoff.get_nowait().timestamp_ms == 2
        assert handoff.get_nowait() is None

    @pytest.mark.asyncio
    async def test_put_after_close_is_dropped(self):
        handoff = ArchiveHandoff(maxsize=2)
        handoff.close()

        assert not handoff.try_put(frame(1))
        assert handoff.size == 0
        assert handoff.dropped_count == 1


class TestConsumerWait:
    """Tests for get() ending on frame, close or cancellation."""

    @pytest.mark.asyncio
    async def test_pending_frames_delivered_after_close(self):
        handoff = ArchiveHandoff(maxsize=5)
        handoff.try_put(frame(1))
        handoff.try_put(frame(2))
        handoff.close()

        assert (await handoff.get()).timestamp_ms == 1
        assert (await handoff.get()).timestamp_ms == 2
        assert await handoff.get() is None

    @pytest.mark.asyncio
    async def test_waiting_get_wakes_on_put(self):
        handoff = ArchiveHandoff(maxsize=5)
        waiter = asyncio.create_task(handoff.get())
        await asyncio.sleep(0)

        handoff.try_put(frame(10))
        result = await asyncio.wait_for(waiter, timeout=1.0)

        assert result.timestamp_ms == 10

    @pytest.mark.asyncio
    async def test_waiting_get_wakes_on_close(self):
        handoff = ArchiveHandoff(maxsize=5)
        waiter = asyncio.create_task(handoff.get())
        await asyncio.sleep(0)

        handoff.close()

        assert await asyncio.wait_for(waiter, timeout=1.0) is None

    @pytest.mark.asyncio
    async def test_waiting_get_wakes_on_cancel(self):
        handoff = ArchiveHandoff(maxsize=5)
        cancel = asyncio.Event()
        waiter = asyncio.create_task(handoff.get(cancel))
        await asyncio.sleep(0)

        cancel.set()

        assert await asyncio.wait_for(waiter, timeout=1.0) is None
        assert not handoff.closed

    @pytest.mark.asyncio
    async def test_frame_not_lost_when_wait_is_abandoned(self):
        handoff = ArchiveHandoff(maxsize=5)
        cancel = asyncio.Event()
        waiter = asyncio.create_task(handoff.get(cancel))
        await asyncio.sleep(0)

        cancel.set()
        await waiter
        handoff.try_put(frame(5))

        assert handoff.get_nowait().timestamp_ms == 5

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        handoff = ArchiveHandoff(maxsize=5)
        handoff.close()
        handoff.close()

        assert handoff.closed
        assert await asyncio.wait_for(handoff.get(), timeout=1.0) is None

    def test_metrics(self):
        handoff = ArchiveHandoff(maxsize=3)
        assert handoff.metrics() == {
            "size": 0,
            "maxsize": 3,
            "dropped_count": 0,
            "total_put": 0,
            "closed": False,
        }
