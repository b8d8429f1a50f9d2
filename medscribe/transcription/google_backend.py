"""Google Speech-to-Text streaming backend using the medical recognition models."""

import asyncio
import logging
from collections import Counter
from typing import Optional, List, Any, AsyncIterator

from google.cloud import speech_v1p1beta1 as speech
from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.oauth2 import service_account

from .base import AbstractTranscriptionBackend, TranscriptionStream
from ..errors import ConfigError, ParseError, StreamError
from ..models.audio import AudioFrame
from ..models.session import StreamConfig, Specialty, TranscriptionMode
from ..models.transcription import TranscriptEvent

logger = logging.getLogger(__name__)

MEDICAL_MODELS = {
    TranscriptionMode.CONVERSATION: "medical_conversation",
    TranscriptionMode.DICTATION: "medical_dictation",
}

# Phrase hints biasing recognition toward each specialty's vocabulary
SPECIALTY_PHRASES = {
    Specialty.PRIMARYCARE: [
        "blood pressure", "medical history", "follow up", "allergies", "prescription",
        "referral", "immunisation", "cholesterol",
    ],
    Specialty.CARDIOLOGY: [
        "atrial fibrillation", "echocardiogram", "ejection fraction", "angina",
        "myocardial infarction", "beta blocker", "stent", "troponin",
    ],
    Specialty.NEUROLOGY: [
        "seizure", "migraine", "multiple sclerosis", "neuropathy", "MRI brain",
        "transient ischaemic attack", "levetiracetam", "reflexes",
    ],
    Specialty.ONCOLOGY: [
        "chemotherapy", "metastasis", "biopsy", "radiotherapy", "tumour markers",
        "lymph nodes", "neutropenia", "staging",
    ],
    Specialty.RADIOLOGY: [
        "CT scan", "ultrasound", "contrast", "opacity", "lesion", "no acute findings",
        "x-ray", "impression",
    ],
    Specialty.UROLOGY: [
        "prostate", "PSA", "haematuria", "cystoscopy", "kidney stones",
        "urinary tract infection", "catheter", "tamsulosin",
    ],
}

SPEAKER_DOCTOR = "Doctor"
SPEAKER_PATIENT = "Patient"


def build_recognition_config(config: StreamConfig, use_enhanced: bool = True,
                             enable_automatic_punctuation: bool = True) -> speech.StreamingRecognitionConfig:
    """Translate a StreamConfig into the handshake sent as the first request."""
    diarization = None
    if config.show_speaker_labels and config.mode is TranscriptionMode.CONVERSATION:
        diarization = speech.SpeakerDiarizationConfig(
            enable_speaker_diarization=True,
            min_speaker_count=2,
            max_speaker_count=2,
        )

    recognition_config = speech.RecognitionConfig(
        encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
        sample_rate_hertz=config.sample_rate,
        audio_channel_count=1,
        language_code=config.language_code,
        model=MEDICAL_MODELS[config.mode],
        use_enhanced=use_enhanced,
        enable_automatic_punctuation=enable_automatic_punctuation,
        diarization_config=diarization,
        speech_contexts=[speech.SpeechContext(phrases=SPECIALTY_PHRASES[config.specialty])],
    )
    return speech.StreamingRecognitionConfig(
        config=recognition_config,
        interim_results=config.interim_results,
    )


def speaker_for_tag(tag: int) -> Optional[str]:
    """Map a diarization speaker tag to a role; tag 0 means unassigned."""
    if not tag:
        return None
    return SPEAKER_DOCTOR if tag == 1 else SPEAKER_PATIENT


class GoogleTranscriptionStream(TranscriptionStream):
    """A single streaming_recognize call.

    Outbound capacity is a bounded asyncio.Queue consumed by the request
    generator, so send() waits whenever the transport falls behind.
    """

    def __init__(self, client: speech.SpeechAsyncClient, streaming_config: speech.StreamingRecognitionConfig,
                 session_id: str, transport_queue_frames: int = 8):
        self.client = client
        self.streaming_config = streaming_config
        self.session_id = session_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=transport_queue_frames)
        self._call = None
        self._send_closed = False
        self._closed = False

    async def _request_generator(self):
        yield speech.StreamingRecognizeRequest(streaming_config=self.streaming_config)
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                logger.debug(f"Request stream for {self.session_id} ended")
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    async def open(self) -> None:
        """Start the call; the configuration request is the first message on it."""
        try:
            self._call = await self.client.streaming_recognize(requests=self._request_generator())
        except auth_exceptions.GoogleAuthError as e:
            raise StreamError(f"Google authentication failed: {e}", session_id=self.session_id, cause=e) from e
        except gax_exceptions.GoogleAPICallError as e:
            raise StreamError(f"Google Speech rejected the stream: {e}", session_id=self.session_id, cause=e) from e

    async def send(self, frame: AudioFrame) -> None:
        if self._send_closed:
            raise StreamError("Cannot send audio after end of stream", session_id=self.session_id)
        await self._queue.put(frame.data)

    async def close_send(self) -> None:
        if self._send_closed:
            return
        self._send_closed = True
        await self._queue.put(None)

    async def responses(self) -> AsyncIterator[Any]:
        if self._call is None:
            raise StreamError("Stream not opened", session_id=self.session_id)
        try:
            async for response in self._call:
                yield response
        except auth_exceptions.GoogleAuthError as e:
            raise StreamError(f"Google authentication failed: {e}", session_id=self.session_id, cause=e) from e
        except gax_exceptions.GoogleAPICallError as e:
            raise StreamError(f"Google Speech stream failed: {e}", session_id=self.session_id, cause=e) from e

    def decode(self, raw: Any) -> List[TranscriptEvent]:
        """Convert one StreamingRecognizeResponse into transcript events."""
        try:
            if raw.error and raw.error.code:
                raise StreamError(f"Google Speech error {raw.error.code}: {raw.error.message}",
                                  session_id=self.session_id)

            events = []
            for result in raw.results:
                if not result.alternatives:
                    continue
                alternative = result.alternatives[0]
                end_ms = int(result.result_end_time.total_seconds() * 1000)
                speaker = None
                if result.is_final and alternative.words:
                    tags = Counter(word.speaker_tag for word in alternative.words if word.speaker_tag)
                    if tags:
                        speaker = speaker_for_tag(tags.most_common(1)[0][0])

                events.append(TranscriptEvent(
                    result_id=f"{self.session_id}-{end_ms}-{result.channel_tag}",
                    is_final=bool(result.is_final),
                    text=alternative.transcript,
                    speaker=speaker,
                ))
            return events
        except (AttributeError, TypeError, ValueError) as e:
            raise ParseError(f"Malformed recognition response: {e}", cause=e) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._call is not None:
            try:
                self._call.cancel()
            except Exception as e:
                logger.debug(f"Ignoring error cancelling call: {e}")
        await self.client.transport.close()
        logger.debug(f"Google stream {self.session_id} closed")


class GoogleMedicalSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text medical models over streaming_recognize."""

    service_name = "Google Speech-to-Text (medical)"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True,
                 transport_queue_frames: int = 8):
        """Initialize Google medical backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
            transport_queue_frames: Frames the transport may hold before send() waits
        """
        if not credentials_path:
            raise ConfigError("Google credentials path is required", field="google_cloud.credentials_path")
        self.credentials_path = credentials_path
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.transport_queue_frames = transport_queue_frames
        self._credentials = None

    @classmethod
    def from_config(cls, config) -> "GoogleMedicalSpeechBackend":
        """Build from a MedScribeConfig."""
        return cls(
            credentials_path=config.get_google_credentials_path(),
            use_enhanced=config.get('google_cloud.use_enhanced_model', True),
            enable_automatic_punctuation=config.get('google_cloud.enable_automatic_punctuation', True),
            transport_queue_frames=config.get('session.transport_queue_frames', 8),
        )

    def _load_credentials(self):
        if self._credentials is None:
            logger.info(f"Loading Google credentials from: {self.credentials_path}")
            try:
                self._credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
            except (OSError, ValueError) as e:
                raise ConfigError(f"Invalid Google credentials file: {e}",
                                  field="google_cloud.credentials_path", value=self.credentials_path,
                                  cause=e) from e
            logger.info(f"Using Google Cloud project: {self._credentials.project_id}")
        return self._credentials

    async def open_stream(self, config: StreamConfig, session_id: Optional[str] = None) -> TranscriptionStream:
        config.validate()
        credentials = self._load_credentials()
        streaming_config = build_recognition_config(
            config, self.use_enhanced, self.enable_automatic_punctuation)

        client = speech.SpeechAsyncClient(credentials=credentials)
        stream = GoogleTranscriptionStream(client, streaming_config, session_id or "stream",
                                           self.transport_queue_frames)
        try:
            await stream.open()
        except BaseException:
            await stream.aclose()
            raise

        logger.info(f"✅ Streaming recognition opened: model={MEDICAL_MODELS[config.mode]}, "
                    f"specialty={config.specialty.value}")
        return stream
