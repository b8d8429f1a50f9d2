"""Conversion of captured sample blocks into s16le PCM frames."""

import time
import logging
from typing import List, Optional

import numpy as np

from ..errors import ConfigError
from ..models.audio import AudioFrame, SAMPLE_RATE, CHANNELS, FRAME_SAMPLES

logger = logging.getLogger(__name__)


def encode_samples(block: np.ndarray) -> bytes:
    """Encode one block of native samples as signed 16-bit little-endian PCM.

    Float samples are clamped to [-1, 1] and scaled asymmetrically: negative
    values by 32768 and non-negative values by 32767, so +1.0 cannot overflow.
    Blocks that are already int16 pass through untouched.

    Args:
        block: 1-D array of float32/float64 or int16 samples

    Returns:
        Raw PCM bytes
    """
    samples = np.asarray(block).reshape(-1)

    if samples.dtype == np.int16:
        return samples.astype('<i2', copy=False).tobytes()

    if not np.issubdtype(samples.dtype, np.floating):
        raise ConfigError(f"Unsupported sample format: {samples.dtype}", field="dtype", value=samples.dtype)

    clipped = np.clip(samples.astype(np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype('<i2').tobytes()


class PCM16Framer:
    """Accumulates encoded samples and emits bounded AudioFrames in capture order."""

    def __init__(self, frame_samples: int = FRAME_SAMPLES, sample_rate: int = SAMPLE_RATE,
                 channels: int = CHANNELS):
        """Initialize the framer.

        Args:
            frame_samples: Samples per emitted frame (2048 = 128 ms at 16 kHz)
            sample_rate: Sample rate of the incoming blocks
            channels: Channel count of the incoming blocks
        """
        if frame_samples <= 0:
            raise ConfigError("frame_samples must be positive", field="frame_samples", value=frame_samples)
        self.frame_samples = frame_samples
        self.sample_rate = sample_rate
        self.channels = channels
        self.frame_bytes = frame_samples * 2 * channels

        self._pending = bytearray()
        self._sequence = 0

    def push(self, block: np.ndarray) -> List[AudioFrame]:
        """Encode a block and return every complete frame now available."""
        self._pending.extend(encode_samples(block))

        frames = []
        while len(self._pending) >= self.frame_bytes:
            data = bytes(self._pending[:self.frame_bytes])
            del self._pending[:self.frame_bytes]
            frames.append(self._make_frame(data))
        return frames

    def flush(self) -> Optional[AudioFrame]:
        """Emit whatever partial frame remains, if any."""
        if not self._pending:
            return None
        data = bytes(self._pending)
        self._pending.clear()
        logger.debug(f"Flushing trailing frame of {len(data)} bytes")
        return self._make_frame(data)

    def reset(self) -> None:
        self._pending.clear()
        self._sequence = 0

    def _make_frame(self, data: bytes) -> AudioFrame:
        self._sequence += 1
        return AudioFrame(
            data=data,
            sequence_number=self._sequence,
            timestamp=time.time(),
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
