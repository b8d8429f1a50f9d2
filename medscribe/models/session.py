"""Session-related data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict

from ..errors import ConfigError
from .audio import SAMPLE_RATE


class SessionState(Enum):
    """Lifecycle of a streaming transcription session."""
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.FAILED)

    @property
    def is_live(self) -> bool:
        return self in (SessionState.STARTING, SessionState.ACTIVE, SessionState.STOPPING)


class Specialty(Enum):
    """Medical vocabulary profile selected for the transcription backend."""
    PRIMARYCARE = "PRIMARYCARE"
    CARDIOLOGY = "CARDIOLOGY"
    NEUROLOGY = "NEUROLOGY"
    ONCOLOGY = "ONCOLOGY"
    RADIOLOGY = "RADIOLOGY"
    UROLOGY = "UROLOGY"

    @property
    def label(self) -> str:
        return SPECIALTY_LABELS[self]

    @classmethod
    def parse(cls, value) -> "Specialty":
        """Accept an enum member or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper().replace(" ", ""))
        except ValueError:
            raise ConfigError(f"Unknown specialty: {value}", field="specialty", value=value)


SPECIALTY_LABELS = {
    Specialty.PRIMARYCARE: "Primary Care",
    Specialty.CARDIOLOGY: "Cardiology",
    Specialty.NEUROLOGY: "Neurology",
    Specialty.ONCOLOGY: "Oncology",
    Specialty.RADIOLOGY: "Radiology",
    Specialty.UROLOGY: "Urology",
}


class TranscriptionMode(Enum):
    """Conversational (clinician and patient) or single-speaker dictation."""
    CONVERSATION = "CONVERSATION"
    DICTATION = "DICTATION"

    @classmethod
    def parse(cls, value) -> "TranscriptionMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ConfigError(f"Unknown transcription mode: {value}", field="mode", value=value)


@dataclass
class StreamConfig:
    """Handshake parameters sent once when a stream is opened."""
    specialty: Specialty = Specialty.PRIMARYCARE
    mode: TranscriptionMode = TranscriptionMode.CONVERSATION
    language_code: str = "en-US"
    encoding: str = "LINEAR16"
    sample_rate: int = SAMPLE_RATE
    show_speaker_labels: bool = True
    interim_results: bool = True

    def validate(self) -> None:
        """Raise ConfigError for combinations the pipeline cannot stream."""
        if self.sample_rate != SAMPLE_RATE:
            raise ConfigError(
                f"Unsupported sample rate {self.sample_rate}Hz; only {SAMPLE_RATE}Hz is streamed",
                field="sample_rate", value=self.sample_rate)
        if self.encoding != "LINEAR16":
            raise ConfigError(f"Unsupported encoding {self.encoding}; only LINEAR16 PCM is streamed",
                              field="encoding", value=self.encoding)
        if self.language_code != "en-US":
            raise ConfigError(f"Unsupported language {self.language_code}; medical models are en-US only",
                              field="language_code", value=self.language_code)


@dataclass
class StartOptions:
    """Per-call overrides for SessionController.start()."""
    specialty: Optional[Specialty] = None
    mode: Optional[TranscriptionMode] = None


@dataclass
class SessionInfo:
    """Information about a transcription session."""
    specialty: Specialty
    mode: TranscriptionMode
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, str]:
        return {
            "session_id": self.session_id,
            "specialty": self.specialty.value,
            "mode": self.mode.value,
            "created_at": self.created_at.isoformat(),
        }


def available_specialties() -> List[Dict[str, str]]:
    """Specialties in the value/label shape the UI renders."""
    return [{"value": s.value, "label": s.label} for s in Specialty]
