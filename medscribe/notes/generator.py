"""Clinical note and billing suggestion generation from a finished transcript."""

import re
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from .completion import CompletionBackend, CompletionError
from .prompts import create_note_prompt, create_billing_prompt, normalize_template

logger = logging.getLogger(__name__)

_BILLING_LINE = re.compile(r"^\s*\[?(\d+)\]?\s*[-–]\s*(.+?)\s*$")


@dataclass
class BillingSuggestion:
    """One MBS item suggested for the consultation."""
    code: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "description": self.description}


@dataclass
class ClinicalNote:
    """Generated note plus billing suggestions."""
    template: str
    content: str
    billing: List[BillingSuggestion] = field(default_factory=list)
    generated_by_model: bool = True
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template": self.template,
            "content": self.content,
            "billing": [b.to_dict() for b in self.billing],
            "generated_by_model": self.generated_by_model,
            "errors": list(self.errors),
        }


def parse_billing_suggestions(text: str) -> List[BillingSuggestion]:
    """Extract ``<item number> - <description>`` lines; anything else is ignored."""
    suggestions = []
    for line in (text or "").splitlines():
        match = _BILLING_LINE.match(line)
        if match:
            suggestions.append(BillingSuggestion(code=match.group(1), description=match.group(2)))
    return suggestions


def template_note(transcript: str, segments: Optional[List[Dict[str, Any]]] = None,
                  template: str = "soap") -> str:
    """Plain fallback note when no language model is available."""
    lines = [f"# {normalize_template(template).upper()} Note (transcript only)", ""]
    if segments:
        for segment in segments:
            lines.append(f"- **{segment.get('speaker', 'Speaker')}:** {segment.get('text', '')}")
    else:
        lines.append(transcript.strip() or "_No speech was transcribed._")
    return "\n".join(lines)


class ClinicalNoteGenerator:
    """Produces a note and billing suggestions with two concurrent completion calls."""

    def __init__(self, backend: Optional[CompletionBackend], model_options: Optional[Dict[str, Any]] = None):
        """Initialize generator.

        Args:
            backend: Completion backend; None means only the template fallback is produced
            model_options: Passed through to every completion call
        """
        self.backend = backend
        self.model_options = model_options or {}

    async def generate(self, transcript: str, template: str = "soap", visit_type: str = "General consultation",
                       patient_name: str = "Patient",
                       segments: Optional[List[Dict[str, Any]]] = None) -> ClinicalNote:
        template = normalize_template(template)
        if self.backend is None or not transcript.strip():
            logger.info("Language model unavailable or transcript empty, using template note")
            return ClinicalNote(template=template, content=template_note(transcript, segments, template),
                                generated_by_model=False)

        note_prompt = create_note_prompt(transcript, template, patient_name, visit_type)
        billing_prompt = create_billing_prompt(transcript, visit_type)

        logger.info(f"Generating {template} note and billing suggestions...")
        note_result, billing_result = await asyncio.gather(
            self.backend.complete(note_prompt, self.model_options),
            self.backend.complete(billing_prompt, self.model_options),
            return_exceptions=True,
        )

        note = ClinicalNote(template=template, content="")
        if isinstance(note_result, CompletionError):
            logger.error(f"Note generation failed: {note_result.message}")
            note.errors.append(note_result.message)
            note.content = template_note(transcript, segments, template)
            note.generated_by_model = False
        elif isinstance(note_result, BaseException):
            raise note_result
        else:
            note.content = note_result

        if isinstance(billing_result, CompletionError):
            logger.error(f"Billing generation failed: {billing_result.message}")
            note.errors.append(billing_result.message)
        elif isinstance(billing_result, BaseException):
            raise billing_result
        else:
            note.billing = parse_billing_suggestions(billing_result)

        logger.info(f"✅ Note generated ({len(note.content)} chars, {len(note.billing)} billing items)")
        return note
