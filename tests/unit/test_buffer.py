"""Unit tests for OutboundFrameBuffer."""

import pytest

from medscribe.audio.buffer import OutboundFrameBuffer
from medscribe.models.audio import AudioFrame


def _frame(n: int) -> AudioFrame:
    return AudioFrame(data=b'\x00\x00' * 4, sequence_number=n, timestamp=float(n))


@pytest.mark.unit
class TestOutboundFrameBuffer:
    """Test cases for OutboundFrameBuffer."""

    def test_fifo_order(self):
        buffer = OutboundFrameBuffer(max_frames=5)
        for n in range(1, 4):
            buffer.push(_frame(n))

        assert [buffer.pop().sequence_number for _ in range(3)] == [1, 2, 3]
        assert buffer.pop() is None

    def test_overflow_drops_oldest(self):
        buffer = OutboundFrameBuffer(max_frames=3)
        dropped = [buffer.push(_frame(n)) for n in range(1, 6)]

        assert [d.sequence_number for d in dropped if d is not None] == [1, 2]
        assert len(buffer) == 3
        assert buffer.dropped_frames == 2
        assert [buffer.pop().sequence_number for _ in range(3)] == [3, 4, 5]

    def test_byte_accounting(self):
        buffer = OutboundFrameBuffer(max_frames=2)
        buffer.push(_frame(1))
        buffer.push(_frame(2))
        buffer.push(_frame(3))
        assert buffer.total_bytes == 16

        buffer.pop()
        assert buffer.total_bytes == 8

    def test_clear_returns_discarded_count(self):
        buffer = OutboundFrameBuffer(max_frames=4)
        buffer.push(_frame(1))
        buffer.push(_frame(2))

        assert buffer.clear() == 2
        assert len(buffer) == 0
        assert buffer.get_buffer_stats()["total_bytes"] == 0

    def test_stats(self):
        buffer = OutboundFrameBuffer(max_frames=1)
        buffer.push(_frame(1))
        buffer.push(_frame(2))

        stats = buffer.get_buffer_stats()
        assert stats == {"frame_count": 1, "total_bytes": 8, "dropped_frames": 1, "capacity_frames": 1}

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            OutboundFrameBuffer(max_frames=0)
