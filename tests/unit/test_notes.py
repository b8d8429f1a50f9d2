"""Unit tests for clinical note and billing generation."""

import asyncio
from datetime import datetime

import pytest

from medscribe.notes.completion import CompletionBackend, CompletionError, OpenAICompletionBackend
from medscribe.notes.generator import ClinicalNoteGenerator, parse_billing_suggestions, template_note
from medscribe.notes.prompts import create_note_prompt, create_billing_prompt, normalize_template


class ScriptedBackend(CompletionBackend):
    """Returns canned replies depending on which prompt it receives."""

    def __init__(self, note="# SOAP Note\n\n## Subjective\n- headache", billing="23 - Level B consultation",
                 note_error=None, billing_error=None):
        self.note = note
        self.billing = billing
        self.note_error = note_error
        self.billing_error = billing_error
        self.prompts = []

    async def complete(self, prompt, model_options=None):
        self.prompts.append(prompt)
        is_billing = "MBS" in prompt
        error = self.billing_error if is_billing else self.note_error
        if error is not None:
            raise error
        return self.billing if is_billing else self.note


TRANSCRIPT = "Patient reports headache for three days. I recommend ibuprofen."


@pytest.mark.unit
class TestClinicalNoteGenerator:
    """Test cases for ClinicalNoteGenerator."""

    def test_note_and_billing_generated(self):
        backend = ScriptedBackend(billing="23 - Level B consultation\n36 - Level C consultation")
        note = asyncio.run(ClinicalNoteGenerator(backend).generate(TRANSCRIPT))

        assert note.generated_by_model is True
        assert note.content.startswith("# SOAP Note")
        assert [b.code for b in note.billing] == ["23", "36"]
        assert note.errors == []
        assert len(backend.prompts) == 2

    def test_without_backend_uses_template(self):
        note = asyncio.run(ClinicalNoteGenerator(None).generate(TRANSCRIPT, template="progress"))

        assert note.generated_by_model is False
        assert note.template == "progress"
        assert TRANSCRIPT in note.content

    def test_empty_transcript_skips_model(self):
        backend = ScriptedBackend()
        note = asyncio.run(ClinicalNoteGenerator(backend).generate("   "))

        assert backend.prompts == []
        assert note.generated_by_model is False
        assert "No speech was transcribed" in note.content

    def test_note_failure_falls_back_but_keeps_billing(self):
        backend = ScriptedBackend(note_error=CompletionError("OpenAI API error: 500 - boom"))
        segments = [{"speaker": "Patient", "text": "My head hurts."}]
        note = asyncio.run(ClinicalNoteGenerator(backend).generate(TRANSCRIPT, segments=segments))

        assert note.generated_by_model is False
        assert "- **Patient:** My head hurts." in note.content
        assert note.errors == ["OpenAI API error: 500 - boom"]
        assert [b.code for b in note.billing] == ["23"]

    def test_billing_failure_keeps_note(self):
        backend = ScriptedBackend(billing_error=CompletionError("timeout"))
        note = asyncio.run(ClinicalNoteGenerator(backend).generate(TRANSCRIPT))

        assert note.generated_by_model is True
        assert note.billing == []
        assert note.errors == ["timeout"]

    def test_unexpected_errors_propagate(self):
        backend = ScriptedBackend(note_error=RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            asyncio.run(ClinicalNoteGenerator(backend).generate(TRANSCRIPT))

    def test_to_dict(self):
        note = asyncio.run(ClinicalNoteGenerator(ScriptedBackend()).generate(TRANSCRIPT))
        data = note.to_dict()
        assert data["template"] == "soap"
        assert data["billing"] == [{"code": "23", "description": "Level B consultation"}]


@pytest.mark.unit
class TestBillingParsing:
    """Test cases for parse_billing_suggestions."""

    def test_accepts_bracketed_and_plain_items(self):
        text = "[23] - Level B consultation\n  721 – GP management plan  \nNot a billing line\n"
        suggestions = parse_billing_suggestions(text)

        assert [(s.code, s.description) for s in suggestions] == [
            ("23", "Level B consultation"),
            ("721", "GP management plan"),
        ]

    def test_empty_reply(self):
        assert parse_billing_suggestions("") == []
        assert parse_billing_suggestions(None) == []


@pytest.mark.unit
class TestPrompts:
    """Test cases for prompt construction."""

    def test_note_prompt_contains_context(self):
        prompt = create_note_prompt(TRANSCRIPT, "consult", patient_name="Jane Doe",
                                    visit_type="Follow-up", now=datetime(2026, 3, 4, 9, 30))

        assert "# Consultation Note" in prompt
        assert "Patient: Jane Doe" in prompt
        assert "Visit Type: Follow-up" in prompt
        assert "Date: 2026-03-04" in prompt
        assert "Time: 09:30" in prompt
        assert TRANSCRIPT in prompt

    def test_billing_prompt_format(self):
        prompt = create_billing_prompt(TRANSCRIPT, now=datetime(2026, 3, 4))
        assert "[Item Number] - [Brief description]" in prompt
        assert "Date: 2026-03-04" in prompt

    def test_template_names(self):
        assert normalize_template("SOAP") == "soap"
        assert normalize_template("consult") == "consultation"
        assert normalize_template("unknown") == "soap"
        assert normalize_template(None) == "soap"

    def test_template_note_without_segments(self):
        assert template_note("Hello there", template="progress").startswith("# PROGRESS Note")


@pytest.mark.unit
class TestOpenAICompletionBackend:
    """Test cases for OpenAICompletionBackend construction."""

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            OpenAICompletionBackend("")

    def test_default_model(self):
        assert OpenAICompletionBackend("sk-test").model == "gpt-4o-mini"
