"""Audio capture and PCM framing."""

from .capture import AudioSource, PyAudioSource, open_microphone
from .encoder import encode_samples, PCM16Framer
from .buffer import OutboundFrameBuffer

__all__ = [
    "AudioSource",
    "PyAudioSource",
    "open_microphone",
    "encode_samples",
    "PCM16Framer",
    "OutboundFrameBuffer",
]
