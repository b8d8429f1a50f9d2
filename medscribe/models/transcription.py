"""Transcription-related data models."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Iterable


class EntityCategory(Enum):
    """Medical entity categories tagged on final transcript spans."""
    MEDICATION = "MEDICATION"
    CONDITION = "CONDITION"
    PROCEDURE = "PROCEDURE"
    ANATOMY = "ANATOMY"
    TEST_NAME = "TEST_NAME"
    TEST_VALUE = "TEST_VALUE"
    TEST_UNIT = "TEST_UNIT"

    @classmethod
    def parse(cls, label: Optional[str]) -> Optional["EntityCategory"]:
        """Map a backend category label; unknown labels yield None."""
        if not label:
            return None
        return _BACKEND_CATEGORY_LABELS.get(str(label).upper())


# Backend labels (AWS Comprehend Medical style) plus our own names
_BACKEND_CATEGORY_LABELS = {
    "MEDICATION": EntityCategory.MEDICATION,
    "MEDICAL_CONDITION": EntityCategory.CONDITION,
    "CONDITION": EntityCategory.CONDITION,
    "TEST_TREATMENT_PROCEDURE": EntityCategory.PROCEDURE,
    "PROCEDURE": EntityCategory.PROCEDURE,
    "ANATOMY": EntityCategory.ANATOMY,
    "TEST_NAME": EntityCategory.TEST_NAME,
    "TEST_VALUE": EntityCategory.TEST_VALUE,
    "TEST_UNIT": EntityCategory.TEST_UNIT,
}


@dataclass(frozen=True)
class Entity:
    """A tagged span of recognized medical information."""
    category: EntityCategory
    text: str
    type: Optional[str] = None
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "text": self.text,
            "type": self.type,
            "confidence": self.confidence,
        }


def entities_from_raw(raw_entities: Optional[Iterable[Dict[str, Any]]]) -> List[Entity]:
    """Build entities from backend dictionaries, skipping unknown categories.

    Accepts both ``{"Category", "Text", "Type", "Score"}`` and the lowercase
    ``{"category", "text", "type", "confidence"}`` shapes.
    """
    entities = []
    for raw in raw_entities or []:
        category = EntityCategory.parse(raw.get("Category", raw.get("category")))
        text = raw.get("Text", raw.get("text"))
        if category is None or not text:
            continue
        entities.append(Entity(
            category=category,
            text=text,
            type=raw.get("Type", raw.get("type")),
            confidence=float(raw.get("Score", raw.get("confidence", 0.0)) or 0.0),
        ))
    return entities


@dataclass
class TranscriptEvent:
    """A unit of transcription received from the backend."""
    result_id: str
    is_final: bool
    text: str
    session_id: Optional[str] = None
    speaker: Optional[str] = None
    entities: List[Entity] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)


@dataclass
class Segment:
    """A finalized, speaker-attributed span of the transcript."""
    speaker: str
    text: str
    timestamp: float
    entities: List[Entity] = field(default_factory=list)
    result_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp,
            "entities": [e.to_dict() for e in self.entities],
            "result_id": self.result_id,
        }


@dataclass
class MedicalInfo:
    """Per-session entity buckets accumulated from final segments."""
    medications: List[Entity] = field(default_factory=list)
    conditions: List[Entity] = field(default_factory=list)
    procedures: List[Entity] = field(default_factory=list)
    anatomy: List[Entity] = field(default_factory=list)
    test_results: List[Entity] = field(default_factory=list)

    def bucket_for(self, category: EntityCategory) -> List[Entity]:
        if category is EntityCategory.MEDICATION:
            return self.medications
        if category is EntityCategory.CONDITION:
            return self.conditions
        if category is EntityCategory.PROCEDURE:
            return self.procedures
        if category is EntityCategory.ANATOMY:
            return self.anatomy
        return self.test_results

    def is_empty(self) -> bool:
        return not any([self.medications, self.conditions, self.procedures, self.anatomy, self.test_results])

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "medications": [e.to_dict() for e in self.medications],
            "conditions": [e.to_dict() for e in self.conditions],
            "procedures": [e.to_dict() for e in self.procedures],
            "anatomy": [e.to_dict() for e in self.anatomy],
            "test_results": [e.to_dict() for e in self.test_results],
        }
