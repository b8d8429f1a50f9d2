"""Abstract base classes for streaming transcription backends."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, List, Optional
import logging

from ..models.audio import AudioFrame
from ..models.session import StreamConfig
from ..models.transcription import TranscriptEvent

logger = logging.getLogger(__name__)


class TranscriptionStream(ABC):
    """One open bidirectional recognition stream.

    Audio goes up through send(); raw backend payloads come back through
    responses() and are turned into events by decode().
    """

    @abstractmethod
    async def send(self, frame: AudioFrame) -> None:
        """Transmit one frame, waiting for transport capacity if necessary."""
        pass

    @abstractmethod
    async def close_send(self) -> None:
        """Signal that no more audio will be sent."""
        pass

    @abstractmethod
    def responses(self) -> AsyncIterator[Any]:
        """Async iterator over raw inbound payloads; ends when the server closes."""
        pass

    @abstractmethod
    def decode(self, raw: Any) -> List[TranscriptEvent]:
        """Turn one raw payload into zero or more events.

        Raises:
            ParseError: The payload is malformed
        """
        pass

    @abstractmethod
    async def aclose(self) -> None:
        """Abort the stream and release transport resources. Idempotent."""
        pass


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    service_name = "unknown"

    @abstractmethod
    async def open_stream(self, config: StreamConfig, session_id: Optional[str] = None) -> TranscriptionStream:
        """Open a stream and perform the configuration handshake.

        Args:
            config: Handshake parameters for this session
            session_id: Owning session, used to prefix result ids

        Returns:
            A stream ready to accept audio

        Raises:
            ConfigError: Credentials or configuration rejected locally
            StreamError: The service refused or could not be reached
        """
        pass
