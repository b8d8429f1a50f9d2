"""Streaming transcription: sessions, backends and transcript assembly."""

from .base import AbstractTranscriptionBackend, TranscriptionStream
from .session import StreamingTranscriptionSession
from .assembler import TranscriptAssembler, detect_speaker
from .publisher import SessionEventPublisher, LIFECYCLE_TOPIC

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionStream",
    "StreamingTranscriptionSession",
    "TranscriptAssembler",
    "detect_speaker",
    "SessionEventPublisher",
    "LIFECYCLE_TOPIC",
]
