"""Data models for the MedScribe application."""

from .audio import AudioStats, AudioFrame, AudioConstraints
from .session import (
    SessionState,
    SessionInfo,
    Specialty,
    TranscriptionMode,
    StreamConfig,
    StartOptions,
    available_specialties,
)
from .transcription import (
    EntityCategory,
    Entity,
    TranscriptEvent,
    Segment,
    MedicalInfo,
    entities_from_raw,
)
from .events import SessionEvent

__all__ = [
    "AudioStats",
    "AudioFrame",
    "AudioConstraints",
    "SessionState",
    "SessionInfo",
    "Specialty",
    "TranscriptionMode",
    "StreamConfig",
    "StartOptions",
    "available_specialties",
    "EntityCategory",
    "Entity",
    "TranscriptEvent",
    "Segment",
    "MedicalInfo",
    "entities_from_raw",
    "SessionEvent",
]
