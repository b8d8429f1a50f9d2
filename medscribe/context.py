"""Application context shared by the CLI and services."""

import logging
from typing import Optional

from pubsub.core import Publisher

from .audio.capture import open_microphone
from .config import MedScribeConfig
from .notes.completion import OpenAICompletionBackend
from .notes.generator import ClinicalNoteGenerator
from .services.session_controller import SessionController, MicrophoneFactory
from .services.usage_meter import DailyUsageMeter, UsageMeter
from .storage.consultation_store import ConsultationStore
from .transcription.base import AbstractTranscriptionBackend
from .transcription.google_backend import GoogleMedicalSpeechBackend
from .transcription.publisher import SessionEventPublisher

logger = logging.getLogger(__name__)


class AppContext:
    """Configuration plus the application's own pub/sub Publisher.

    Built once at startup and handed to whatever needs it, so there is no
    module-level state to reset between sessions or tests.
    """

    def __init__(self, config: MedScribeConfig, publisher: Optional[Publisher] = None):
        self.config = config
        self.publisher = publisher or Publisher()
        self.event_publisher = SessionEventPublisher(self.publisher)

    def build_backend(self) -> AbstractTranscriptionBackend:
        return GoogleMedicalSpeechBackend.from_config(self.config)

    def build_usage_meter(self) -> UsageMeter:
        return DailyUsageMeter(
            self.config.get_data_directory(),
            free_daily_limit=self.config.get('usage.free_daily_limit', 5),
        )

    def build_controller(self,
                         backend: Optional[AbstractTranscriptionBackend] = None,
                         usage_meter: Optional[UsageMeter] = None,
                         microphone_factory: MicrophoneFactory = open_microphone) -> SessionController:
        return SessionController(
            config=self.config,
            backend=backend or self.build_backend(),
            usage_meter=usage_meter or self.build_usage_meter(),
            event_publisher=self.event_publisher,
            microphone_factory=microphone_factory,
        )

    def build_store(self) -> ConsultationStore:
        return ConsultationStore(
            self.config.get_data_directory(),
            max_history_items=self.config.get('storage.max_history_items', 100),
        )

    def build_note_generator(self) -> ClinicalNoteGenerator:
        """Note generator; without an OpenAI key it only produces template notes."""
        api_key = self.config.get_openai_api_key()
        if not api_key:
            logger.info("No OpenAI API key configured, notes will use the plain template")
            return ClinicalNoteGenerator(None)
        backend = OpenAICompletionBackend(api_key, model=self.config.get('openai.model', 'gpt-4o-mini'))
        return ClinicalNoteGenerator(backend)
