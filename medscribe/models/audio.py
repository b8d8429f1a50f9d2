"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional

SAMPLE_RATE = 16000
CHANNELS = 1
BYTES_PER_SAMPLE = 2  # signed 16-bit little-endian
FRAME_SAMPLES = 2048  # 128 ms at 16 kHz


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    block_size: int
    total_blocks: int


@dataclass
class AudioConstraints:
    """Requested microphone configuration."""
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS
    frame_samples: int = FRAME_SAMPLES
    device_index: Optional[int] = None


@dataclass(frozen=True)
class AudioFrame:
    """An immutable buffer of s16le PCM samples ready for transmission."""
    data: bytes
    sequence_number: int
    timestamp: float  # Time when the last sample of this frame was captured
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS

    @property
    def sample_count(self) -> int:
        return len(self.data) // (BYTES_PER_SAMPLE * self.channels)

    @property
    def duration_ms(self) -> int:
        return int(self.sample_count * 1000 / self.sample_rate)
