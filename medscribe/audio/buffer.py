"""Bounded outbound frame buffer used between capture and the network stream."""

import logging
from collections import deque
from typing import Optional

from ..models.audio import AudioFrame

logger = logging.getLogger(__name__)


class OutboundFrameBuffer:
    """FIFO of frames waiting for transport capacity.

    Frames are never reordered. When the hard cap is exceeded the oldest
    queued frame is dropped so memory stays bounded while the newest audio
    keeps flowing.
    """

    def __init__(self, max_frames: int = 64):
        """Initialize outbound buffer.

        Args:
            max_frames: Hard cap on queued frames (64 frames ~ 8s at 128 ms/frame)
        """
        if max_frames <= 0:
            raise ValueError("max_frames must be positive")
        self.max_frames = max_frames
        self.buffer = deque()
        self.total_bytes = 0
        self.dropped_frames = 0

    def push(self, frame: AudioFrame) -> Optional[AudioFrame]:
        """Queue a frame.

        Returns:
            The frame that was evicted to make room, or None
        """
        self.buffer.append(frame)
        self.total_bytes += len(frame.data)

        if len(self.buffer) > self.max_frames:
            dropped = self.buffer.popleft()
            self.total_bytes -= len(dropped.data)
            self.dropped_frames += 1
            return dropped
        return None

    def pop(self) -> Optional[AudioFrame]:
        """Remove and return the oldest queued frame, or None if empty."""
        if not self.buffer:
            return None
        frame = self.buffer.popleft()
        self.total_bytes -= len(frame.data)
        return frame

    def clear(self) -> int:
        """Discard all queued frames and return how many were discarded."""
        discarded = len(self.buffer)
        self.buffer.clear()
        self.total_bytes = 0
        if discarded:
            logger.debug(f"Discarded {discarded} queued frames")
        return discarded

    def __len__(self) -> int:
        return len(self.buffer)

    def get_buffer_stats(self) -> dict:
        return {
            "frame_count": len(self.buffer),
            "total_bytes": self.total_bytes,
            "dropped_frames": self.dropped_frames,
            "capacity_frames": self.max_frames,
        }
