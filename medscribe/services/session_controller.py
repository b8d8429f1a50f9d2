"""Session controller: the single entry point the UI drives.

Owns at most one live transcription session at a time and wires microphone
capture, PCM framing, the streaming session and the transcript assembler
together. Every failure is turned into one human-readable message on the
error callback and a False return; nothing is raised to the UI.
"""

import asyncio
import logging
from functools import partial
from typing import Optional, Callable, Dict, Any, List

import numpy as np

from ..audio.capture import AudioSource, open_microphone
from ..audio.encoder import PCM16Framer
from ..config import MedScribeConfig
from ..errors import ScribeError, ConfigError, QuotaExceeded, DeviceError
from ..models.audio import AudioConstraints
from ..models.session import (
    SessionInfo, SessionState, Specialty, TranscriptionMode, StreamConfig, StartOptions,
    available_specialties,
)
from ..models.transcription import Segment, MedicalInfo, TranscriptEvent
from ..transcription.assembler import TranscriptAssembler
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.publisher import SessionEventPublisher
from ..transcription.session import StreamingTranscriptionSession
from .usage_meter import UsageMeter

logger = logging.getLogger(__name__)

MicrophoneFactory = Callable[[AudioConstraints], AudioSource]


class SessionController:
    """Starts, stops and restarts transcription sessions for the UI."""

    def __init__(self,
                 config: MedScribeConfig,
                 backend: AbstractTranscriptionBackend,
                 usage_meter: UsageMeter,
                 event_publisher: Optional[SessionEventPublisher] = None,
                 microphone_factory: MicrophoneFactory = open_microphone):
        """Initialize session controller.

        Args:
            config: Application configuration
            backend: Transcription backend used for every session
            usage_meter: Quota policy consulted before each session
            event_publisher: Receives started/stopped/failed lifecycle events
            microphone_factory: Opens the audio source for a session
        """
        self.config = config
        self.backend = backend
        self.usage_meter = usage_meter
        self.event_publisher = event_publisher
        self.microphone_factory = microphone_factory

        self.specialty = Specialty.parse(config.get('transcription.specialty', 'PRIMARYCARE'))
        self.mode = TranscriptionMode.parse(config.get('transcription.mode', 'CONVERSATION'))

        self.session: Optional[StreamingTranscriptionSession] = None
        self.session_info: Optional[SessionInfo] = None
        self.audio_source: Optional[AudioSource] = None
        self.framer = PCM16Framer(
            frame_samples=config.get('audio.frame_samples', 2048),
            sample_rate=config.get('audio.sample_rate', 16000),
            channels=config.get('audio.channels', 1),
        )
        self.assembler = TranscriptAssembler(
            on_transcript_update=self._emit_transcript,
            on_segment_complete=self._emit_segment,
        )

        self._transcript_callback: Optional[Callable[[str, bool], None]] = None
        self._segment_callback: Optional[Callable[[Segment], None]] = None
        self._error_callback: Optional[Callable[[str], None]] = None
        self._starting = False
        self._stop_requested = False
        self._capture_failure_stop: Optional[asyncio.Future] = None

        logger.info(f"SessionController ready (backend={backend.service_name}, "
                    f"specialty={self.specialty.value}, mode={self.mode.value})")

    # -- callback registration -------------------------------------------

    def on_transcript_update(self, callback: Callable[[str, bool], None]) -> None:
        """Register callback(text, is_interim)."""
        self._transcript_callback = callback

    def on_segment_complete(self, callback: Callable[[Segment], None]) -> None:
        self._segment_callback = callback

    def on_error(self, callback: Callable[[str], None]) -> None:
        self._error_callback = callback

    def _emit_transcript(self, text: str, is_interim: bool) -> None:
        if self._transcript_callback is not None:
            self._transcript_callback(text, is_interim)

    def _emit_segment(self, segment: Segment) -> None:
        if self._segment_callback is not None:
            self._segment_callback(segment)

    def _report(self, message: str) -> None:
        logger.error(f"Reporting error to UI: {message}")
        if self._error_callback is None:
            return
        try:
            self._error_callback(message)
        except Exception as e:
            logger.error(f"Error callback failed: {e}", exc_info=True)

    # -- lifecycle -------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._starting or (self.session is not None and self.session.is_live)

    async def start(self, options: Optional[StartOptions] = None) -> bool:
        """Start a new session.

        Returns:
            True on success; False if a session is already live or start failed
        """
        return await self._start(options or StartOptions(), metered=True)

    async def _start(self, options: StartOptions, metered: bool) -> bool:
        if self.is_active:
            logger.warning("Session already active, ignoring start request")
            return False

        self._starting = True
        self._stop_requested = False
        audio_source = None
        session = None
        try:
            if metered:
                status = self.usage_meter.can_proceed()
                if not status.allowed:
                    raise QuotaExceeded(status.reason, remaining_quota=status.remaining_quota)

            specialty = Specialty.parse(options.specialty or self.specialty)
            mode = TranscriptionMode.parse(options.mode or self.mode)
            stream_config = self._build_stream_config(specialty, mode)
            stream_config.validate()

            audio_source = self.microphone_factory(self._audio_constraints())

            self.assembler.reset()
            self.framer.reset()
            info = SessionInfo(specialty=specialty, mode=mode)
            session = StreamingTranscriptionSession(
                backend=self.backend,
                config=stream_config,
                on_event=self._on_session_event,
                on_error=partial(self._on_session_error, info.session_id),
                max_pending_frames=self.config.get('session.max_pending_frames', 64),
                drain_timeout=self.config.get('session.drain_timeout_seconds', 3.0),
                handshake_timeout=self.config.get('session.handshake_timeout_seconds', 10.0),
                session_id=info.session_id,
            )
            self.session = session
            self.session_info = info

            await session.start()
            if self._stop_requested or session.state is not SessionState.ACTIVE:
                logger.info(f"Session {info.session_id} stopped while starting")
                audio_source.close()
                return False

            audio_source.start(asyncio.get_running_loop(), self._on_audio_block, self._on_capture_error)
            self.audio_source = audio_source

            if metered:
                self.usage_meter.record_usage()
            self.specialty, self.mode = specialty, mode

            if self.event_publisher:
                self.event_publisher.started(info.session_id, info.to_dict())
            logger.info(f"✅ Transcription started: session={info.session_id}, "
                        f"specialty={specialty.value}, mode={mode.value}")
            return True

        except ScribeError as e:
            await self._abandon(session, audio_source)
            self._report(self._describe(e))
            return False
        except Exception as e:
            logger.error(f"Unexpected error starting session: {e}", exc_info=True)
            await self._abandon(session, audio_source)
            self._report(f"Could not start transcription: {e}")
            return False
        finally:
            self._starting = False

    async def _abandon(self, session: Optional[StreamingTranscriptionSession],
                       audio_source: Optional[AudioSource]) -> None:
        """Release whatever a failed start managed to open."""
        if audio_source is not None:
            audio_source.close()
        if audio_source is self.audio_source:
            self.audio_source = None
        if session is not None and session.is_live:
            await session.stop()

    def _describe(self, error: ScribeError) -> str:
        if isinstance(error, QuotaExceeded):
            return f"{error.message} {error.upgrade_hint}"
        if isinstance(error, DeviceError):
            return f"Microphone unavailable: {error.message}"
        if isinstance(error, ConfigError):
            return f"Configuration error: {error.message}"
        return error.message

    async def stop(self) -> Dict[str, Any]:
        """Stop capture, drain the session and return the consultation so far.

        Safe to call repeatedly; later calls just return the same results.
        """
        self._stop_requested = True
        if self.audio_source is not None:
            self.audio_source.close()
            self.audio_source = None
            # Blocks the capture thread already scheduled run before the trailing flush
            await asyncio.sleep(0)

        session = self.session
        if session is not None and session.is_live:
            trailing = self.framer.flush()
            if trailing is not None:
                session.submit_frame(trailing)
            # Also waits for a drain already started after a capture failure
            await session.stop()
            if self.event_publisher and session.state is SessionState.CLOSED:
                self.event_publisher.stopped(session.session_id, session.get_stats())
            logger.info(f"Transcription stopped: session={session.session_id}")

        self.assembler.seal()
        return self._result()

    def _result(self) -> Dict[str, Any]:
        return {
            "transcript": self.assembler.get_transcript(),
            "segments": [s.to_dict() for s in self.assembler.get_segments()],
            "medical_info": self.assembler.get_medical_info().to_dict(),
            "session_id": self.session_info.session_id if self.session_info else None,
        }

    async def set_specialty(self, value) -> bool:
        """Change specialty; a live session is stopped and restarted with it."""
        try:
            specialty = Specialty.parse(value)
        except ConfigError as e:
            self._report(self._describe(e))
            return False

        self.specialty = specialty
        logger.info(f"Specialty set to {specialty.value}")
        if not self.is_active:
            return True

        await self.stop()
        return await self._start(StartOptions(specialty=specialty, mode=self.mode), metered=False)

    # -- audio and session events ---------------------------------------

    def _on_audio_block(self, samples: np.ndarray) -> None:
        """Runs on the event loop for every block the capture thread reads."""
        session = self.session
        if session is None or not session.is_live:
            return
        try:
            frames = self.framer.push(samples)
        except ConfigError as e:
            logger.error(f"Dropping unencodable audio block: {e.message}")
            return
        for frame in frames:
            session.submit_frame(frame)

    def _on_capture_error(self, error: DeviceError) -> None:
        session = self.session
        if session is None or not session.is_live:
            return
        if self.audio_source is not None:
            self.audio_source.close()
            self.audio_source = None
        self._report(self._describe(error))
        if self.event_publisher:
            self.event_publisher.failed(session.session_id, error.message)
        # Audio already sent still gets its trailing results
        self._capture_failure_stop = asyncio.ensure_future(session.stop())

    def send_audio_chunk(self, chunk: bytes) -> Dict[str, Any]:
        """Accept one frame of s16le PCM from an external capture context."""
        session = self.session
        if session is None or session.state not in (SessionState.STARTING, SessionState.ACTIVE):
            return {"success": False, "error": "No active transcription session"}
        if not chunk or len(chunk) % 2:
            return {"success": False, "error": "Audio chunk must be non-empty 16-bit PCM"}

        for frame in self.framer.push(np.frombuffer(chunk, dtype='<i2')):
            session.submit_frame(frame)
        return {"success": True}

    def _on_session_event(self, event: TranscriptEvent) -> None:
        if self.session_info is None or event.session_id != self.session_info.session_id:
            logger.debug(f"Ignoring event for stale session {event.session_id}")
            return
        self.assembler.handle_event(event)

    def _on_session_error(self, session_id: str, error: ScribeError) -> None:
        if self.session_info is None or session_id != self.session_info.session_id:
            logger.debug(f"Ignoring error from stale session {session_id}")
            return
        if self._starting:
            # start() reports its own failure
            return

        if self.audio_source is not None:
            self.audio_source.close()
            self.audio_source = None
        self.assembler.seal()
        self._report(f"Transcription stopped: {error.message}")
        if self.event_publisher:
            self.event_publisher.failed(session_id, error.message)

    # -- accessors -------------------------------------------------------

    def _build_stream_config(self, specialty: Specialty, mode: TranscriptionMode) -> StreamConfig:
        return StreamConfig(
            specialty=specialty,
            mode=mode,
            language_code=self.config.get('transcription.language', 'en-US'),
            sample_rate=self.config.get('audio.sample_rate', 16000),
            show_speaker_labels=self.config.get('transcription.show_speaker_labels', True),
        )

    def _audio_constraints(self) -> AudioConstraints:
        return AudioConstraints(
            sample_rate=self.config.get('audio.sample_rate', 16000),
            channels=self.config.get('audio.channels', 1),
            frame_samples=self.config.get('audio.frame_samples', 2048),
            device_index=self.config.get('audio.device_index'),
        )

    def get_transcript(self) -> str:
        return self.assembler.get_transcript()

    def get_segments(self) -> List[Segment]:
        return self.assembler.get_segments()

    def get_medical_info(self) -> MedicalInfo:
        return self.assembler.get_medical_info()

    def clear(self) -> None:
        """Discard the transcript, segments and medical info."""
        self.assembler.reset()
        if not self.is_active:
            self.assembler.seal()

    def get_available_specialties(self) -> List[Dict[str, str]]:
        return available_specialties()

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            "is_active": self.is_active,
            "specialty": self.specialty.value,
            "mode": self.mode.value,
        }
        if self.session is not None:
            stats["session"] = self.session.get_stats()
        if self.audio_source is not None:
            stats["audio"] = self.audio_source.get_recording_stats()
        return stats
