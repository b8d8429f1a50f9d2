"""Streaming transcription session: one bidirectional stream, one lifecycle."""

import asyncio
import uuid
import logging
from typing import Optional, Callable, Dict, Any

from .base import AbstractTranscriptionBackend, TranscriptionStream
from ..audio.buffer import OutboundFrameBuffer
from ..errors import ScribeError, StreamError, ParseError, SessionStateError
from ..models.audio import AudioFrame
from ..models.session import SessionState, StreamConfig
from ..models.transcription import TranscriptEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[TranscriptEvent], None]
ErrorCallback = Callable[[ScribeError], None]


class StreamingTranscriptionSession:
    """Owns one transcription stream and the two pumps feeding it.

    IDLE -> STARTING -> ACTIVE -> STOPPING -> CLOSED, with FAILED reachable
    from any live state. CLOSED and FAILED are terminal; a failed session
    never reconnects on its own.
    """

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 config: StreamConfig,
                 on_event: EventCallback,
                 on_error: ErrorCallback,
                 max_pending_frames: int = 64,
                 drain_timeout: float = 3.0,
                 handshake_timeout: float = 10.0,
                 session_id: Optional[str] = None):
        """Initialize session.

        Args:
            backend: Backend used to open the stream
            config: Handshake parameters
            on_event: Receives every decoded event stamped with this session's id
            on_error: Receives the failure, at most once
            max_pending_frames: Hard cap on frames waiting for transport
            drain_timeout: Seconds stop() waits for trailing results
            handshake_timeout: Seconds start() waits for the stream to open
            session_id: Explicit id; a fresh one is generated if omitted
        """
        self.backend = backend
        self.config = config
        self.on_event = on_event
        self.on_error = on_error
        self.drain_timeout = drain_timeout
        self.handshake_timeout = handshake_timeout
        self.session_id = session_id or uuid.uuid4().hex

        self.state = SessionState.IDLE
        self.failure_reason: Optional[str] = None

        self._buffer = OutboundFrameBuffer(max_pending_frames)
        self._stream: Optional[TranscriptionStream] = None
        self._outbound_task: Optional[asyncio.Task] = None
        self._inbound_task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._handshake_done: Optional[asyncio.Event] = None
        self._stop_task: Optional[asyncio.Future] = None
        self._stream_closed = False

        # Statistics
        self.frames_submitted = 0
        self.frames_sent = 0
        self.responses_received = 0
        self.events_received = 0
        self.parse_errors = 0

    @property
    def is_live(self) -> bool:
        return self.state.is_live

    async def start(self) -> None:
        """Open the stream and start both pumps.

        Raises:
            SessionStateError: The session is not IDLE
            ConfigError: The stream configuration is invalid
            StreamError: The handshake failed or timed out
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"Cannot start session in state {self.state.value}",
                                    state=self.state.value)

        self.state = SessionState.STARTING
        self._wakeup = asyncio.Event()
        self._handshake_done = asyncio.Event()
        logger.info(f"Starting transcription session {self.session_id}")

        try:
            self.config.validate()
            self._stream = await asyncio.wait_for(
                self.backend.open_stream(self.config, self.session_id), self.handshake_timeout)
        except asyncio.TimeoutError as e:
            error = StreamError(f"Transcription service did not respond within {self.handshake_timeout}s",
                                session_id=self.session_id, cause=e)
            await self._fail(error)
            raise error from e
        except ScribeError as e:
            await self._fail(e)
            raise
        except Exception as e:
            error = StreamError(f"Could not open transcription stream: {e}",
                                session_id=self.session_id, cause=e)
            await self._fail(error)
            raise error from e
        finally:
            self._handshake_done.set()

        # stop() may have been requested during the handshake; pumps still run so it can flush
        if self.state is SessionState.STARTING:
            self.state = SessionState.ACTIVE

        self._outbound_task = asyncio.ensure_future(self._pump_outbound())
        self._inbound_task = asyncio.ensure_future(self._pump_inbound())
        logger.info(f"✅ Session {self.session_id} active ({self.backend.service_name})")

    def submit_frame(self, frame: AudioFrame) -> bool:
        """Queue a frame for transmission without blocking.

        Returns:
            True if accepted, False when the session is not STARTING or ACTIVE
        """
        if self.state not in (SessionState.STARTING, SessionState.ACTIVE):
            return False

        self.frames_submitted += 1
        dropped = self._buffer.push(frame)
        if dropped is not None:
            logger.warning(f"Outbound buffer full ({self._buffer.max_frames} frames), "
                           f"dropped frame #{dropped.sequence_number}")
        if self._wakeup is not None:
            self._wakeup.set()
        return True

    async def stop(self) -> None:
        """Close the outbound side, drain trailing results, then close.

        Every caller waits for the same drain, so a stop() made while another
        is in progress returns only once the session is closed. Calling stop()
        on a CLOSED or FAILED session does nothing.
        """
        if self.state is SessionState.IDLE:
            self.state = SessionState.CLOSED
            return

        if self._stop_task is None:
            if self.state.is_terminal:
                return
            was_starting = self.state is SessionState.STARTING
            self.state = SessionState.STOPPING
            logger.info(f"Stopping session {self.session_id} ({len(self._buffer)} frames pending)")
            self._stop_task = asyncio.ensure_future(self._drain_and_close(was_starting))

        # A cancelled caller must not cancel the drain other callers wait on
        await asyncio.shield(self._stop_task)

    async def _drain_and_close(self, was_starting: bool) -> None:
        if was_starting:
            await self._handshake_done.wait()
            if self.state is SessionState.FAILED:
                return

        self._wakeup.set()
        pumps = [t for t in (self._outbound_task, self._inbound_task) if t is not None]
        if pumps:
            _, pending = await asyncio.wait(pumps, timeout=self.drain_timeout)
            if pending:
                logger.warning(f"Drain timed out after {self.drain_timeout}s, cancelling {len(pending)} task(s)")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        await self._close_stream()
        if self.state is SessionState.STOPPING:
            self.state = SessionState.CLOSED
            logger.info(f"Session {self.session_id} closed. Stats: {self.get_stats()}")

    async def _pump_outbound(self) -> None:
        """Forward buffered frames in order; end the audio stream once stopping."""
        try:
            while True:
                frame = self._buffer.pop()
                if frame is None:
                    if self.state is not SessionState.ACTIVE:
                        break
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    continue
                await self._stream.send(frame)
                self.frames_sent += 1

            if self.state is SessionState.STOPPING:
                await self._stream.close_send()
                logger.debug(f"Outbound side closed after {self.frames_sent} frames")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_failure(e)

    async def _pump_inbound(self) -> None:
        """Decode inbound payloads and deliver events until the stream ends."""
        try:
            async for raw in self._stream.responses():
                self.responses_received += 1
                try:
                    events = self._stream.decode(raw)
                except ParseError as e:
                    self.parse_errors += 1
                    logger.warning(f"Dropping undecodable payload: {e}")
                    continue

                for event in events:
                    event.session_id = self.session_id
                    self.events_received += 1
                    self._deliver(event)

            if self.state is SessionState.ACTIVE:
                raise StreamError("Transcription stream ended unexpectedly", session_id=self.session_id)
            logger.debug(f"Inbound stream for {self.session_id} finished")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_failure(e)

    def _deliver(self, event: TranscriptEvent) -> None:
        try:
            self.on_event(event)
        except Exception as e:
            logger.error(f"Event callback failed: {e}", exc_info=True)

    async def _handle_failure(self, exc: Exception) -> None:
        if self.state.is_terminal:
            return
        if isinstance(exc, ScribeError):
            error = exc
        else:
            error = StreamError(f"Transcription stream failed: {exc}", session_id=self.session_id, cause=exc)

        current = asyncio.current_task()
        for task in (self._outbound_task, self._inbound_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        await self._fail(error)

    async def _fail(self, error: ScribeError) -> None:
        """Enter FAILED, discard pending audio, abort the stream and report once."""
        if self.state.is_terminal:
            return
        self.state = SessionState.FAILED
        self.failure_reason = error.message
        discarded = self._buffer.clear()
        logger.error(f"Session {self.session_id} failed: {error.message} ({discarded} frames discarded)")

        await self._close_stream()
        try:
            self.on_error(error)
        except Exception as e:
            logger.error(f"Error callback failed: {e}", exc_info=True)

    async def _close_stream(self) -> None:
        if self._stream is None or self._stream_closed:
            return
        self._stream_closed = True
        try:
            await self._stream.aclose()
        except Exception as e:
            logger.warning(f"Error closing transcription stream: {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "frames_submitted": self.frames_submitted,
            "frames_sent": self.frames_sent,
            "frames_dropped": self._buffer.dropped_frames,
            "frames_pending": len(self._buffer),
            "responses_received": self.responses_received,
            "events_received": self.events_received,
            "parse_errors": self.parse_errors,
        }
