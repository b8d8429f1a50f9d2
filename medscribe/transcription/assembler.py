"""Transcript assembler that folds interim and final events into one transcript.

Interim events only produce a preview (committed transcript plus the interim
tail); they never touch the committed text. Final events are appended once
per result id, become speaker-attributed segments and feed the per-session
medical entity buckets.
"""

import logging
import threading
from typing import Callable, List, Optional

from ..models.transcription import TranscriptEvent, Segment, MedicalInfo

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str, bool], None]
SegmentCallback = Callable[[Segment], None]

DOCTOR_PHRASES = [
    'i recommend', 'prescribed', 'diagnosis', 'examination shows', 'let me examine',
    'blood pressure', 'temperature', 'any allergies', 'medical history', 'follow up',
    'take this medication', 'dosage', 'side effects',
]

PATIENT_PHRASES = [
    'i feel', 'it hurts', 'i have been', 'my symptoms', 'started yesterday', 'for days',
    'getting worse', 'i am taking', 'allergic to', 'family history',
]


def detect_speaker(text: str) -> str:
    """Guess who said ``text`` from characteristic phrases.

    Returns "Doctor" or "Patient" when that side has strictly more phrase
    matches, otherwise "Speaker".
    """
    lowered = text.lower()
    doctor_score = sum(1 for phrase in DOCTOR_PHRASES if phrase in lowered)
    patient_score = sum(1 for phrase in PATIENT_PHRASES if phrase in lowered)

    if doctor_score > patient_score:
        return "Doctor"
    if patient_score > doctor_score:
        return "Patient"
    return "Speaker"


class TranscriptAssembler:
    """Accumulates final text, segments and medical entities for one session.

    A new assembler renders interim previews straight away; seal() stops
    them until the next reset().
    """

    detect_speaker = staticmethod(detect_speaker)

    def __init__(self,
                 on_transcript_update: Optional[TranscriptCallback] = None,
                 on_segment_complete: Optional[SegmentCallback] = None,
                 separator: str = " "):
        """Initialize assembler.

        Args:
            on_transcript_update: Called with (text, is_interim)
            on_segment_complete: Called with each new Segment
            separator: Appended after every final text
        """
        self.on_transcript_update = on_transcript_update
        self.on_segment_complete = on_segment_complete
        self.separator = separator

        self.lock = threading.RLock()
        self.transcript = ""
        self.segments: List[Segment] = []
        self.medical_info = MedicalInfo()
        self._seen_final_ids = set()
        self.live = True

    def reset(self) -> None:
        """Clear everything and accept events for a new session."""
        with self.lock:
            self.transcript = ""
            self.segments = []
            self.medical_info = MedicalInfo()
            self._seen_final_ids = set()
            self.live = True
        logger.debug("Transcript assembler reset")

    def seal(self) -> None:
        """Stop rendering interim previews; committed text stays readable."""
        with self.lock:
            self.live = False

    def handle_event(self, event: TranscriptEvent) -> None:
        """Apply one event and fire the matching callbacks."""
        if not event.is_final:
            self._handle_interim(event)
            return

        text = (event.text or "").strip()
        with self.lock:
            if not text:
                return
            if event.result_id in self._seen_final_ids:
                logger.debug(f"Ignoring duplicate final result {event.result_id}")
                return
            self._seen_final_ids.add(event.result_id)

            self.transcript += event.text + self.separator
            segment = Segment(
                speaker=event.speaker or detect_speaker(event.text),
                text=event.text,
                timestamp=event.timestamp,
                entities=list(event.entities),
                result_id=event.result_id,
            )
            self.segments.append(segment)
            for entity in event.entities:
                self.medical_info.bucket_for(entity.category).append(entity)
            transcript = self.transcript

        logger.debug(f"Final [{segment.speaker}]: {segment.text[:50]}...")
        self._notify_segment(segment)
        self._notify_transcript(transcript, False)

    def _handle_interim(self, event: TranscriptEvent) -> None:
        with self.lock:
            if not event.text or not self.live:
                return
            preview = self.transcript + event.text
        self._notify_transcript(preview, True)

    def _notify_transcript(self, text: str, is_interim: bool) -> None:
        if self.on_transcript_update is None:
            return
        try:
            self.on_transcript_update(text, is_interim)
        except Exception as e:
            logger.error(f"Transcript callback failed: {e}", exc_info=True)

    def _notify_segment(self, segment: Segment) -> None:
        if self.on_segment_complete is None:
            return
        try:
            self.on_segment_complete(segment)
        except Exception as e:
            logger.error(f"Segment callback failed: {e}", exc_info=True)

    def get_transcript(self) -> str:
        with self.lock:
            return self.transcript

    def get_segments(self) -> List[Segment]:
        with self.lock:
            return self.segments.copy()

    def get_medical_info(self) -> MedicalInfo:
        with self.lock:
            return MedicalInfo(
                medications=list(self.medical_info.medications),
                conditions=list(self.medical_info.conditions),
                procedures=list(self.medical_info.procedures),
                anatomy=list(self.medical_info.anatomy),
                test_results=list(self.medical_info.test_results),
            )
