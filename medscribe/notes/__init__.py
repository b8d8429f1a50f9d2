"""Clinical note and billing generation."""

from .completion import CompletionBackend, CompletionError, OpenAICompletionBackend
from .generator import ClinicalNoteGenerator, ClinicalNote, BillingSuggestion, parse_billing_suggestions
from .prompts import NOTE_TEMPLATES

__all__ = [
    "CompletionBackend",
    "CompletionError",
    "OpenAICompletionBackend",
    "ClinicalNoteGenerator",
    "ClinicalNote",
    "BillingSuggestion",
    "parse_billing_suggestions",
    "NOTE_TEMPLATES",
]
