"""Prompt templates for clinical notes and MBS billing suggestions."""

from datetime import datetime
from typing import Optional

NOTE_TEMPLATES = ("soap", "consultation", "progress")

_TEMPLATE_ALIASES = {
    "consult": "consultation",
}

_NOTE_PREAMBLE = """You are a medical scribe. Write a professional {title} from the consultation transcript below.

Rules:
- Use only information present in the transcript
- Use appropriate medical terminology
- Format the note as MARKDOWN with headers and bullet points
- Put important findings in **bold**
{extra_rules}
Patient: {patient_name}
Visit Type: {visit_type}
Date: {date}
Time: {time}

Transcript:
{transcript}

Write the {title} in MARKDOWN using this outline:
"""

_NOTE_OUTLINES = {
    "soap": ("SOAP note", "- Be concise but include specific details that were mentioned\n", """
# SOAP Note

## Subjective
- **Chief Complaint:**
- **History of Present Illness:**
- **Past Medical History:**
- **Current Medications:**
- **Allergies:**

## Objective
- **Vital Signs:**
- **Physical Examination:**
- **Laboratory/Test Results:**

## Assessment
- **Primary Diagnosis:**
- **Differential Diagnoses:**

## Plan
- **Medications:**
- **Diagnostic Tests:**
- **Follow-up:**
- **Patient Education:**"""),
    "consultation": ("consultation note", "- Be comprehensive and include all relevant clinical information\n", """
# Consultation Note

## Chief Complaint

## History of Present Illness

## Past Medical History

## Current Medications

## Allergies

## Review of Systems

## Physical Examination

## Assessment and Plan

## Follow-up"""),
    "progress": ("progress note", "- Focus on changes since the last visit\n- Note improvement or worsening of each condition\n", """
# Progress Note

## Interval History

## Current Symptoms
- **Improved:**
- **Unchanged:**
- **Worsened:**
- **New:**

## Medication Review
- **Compliance:**
- **Side Effects:**

## Examination Findings

## Assessment

## Plan
- **Medication Adjustments:**
- **Follow-up:**
- **Tests Ordered:**
- **Referrals:**"""),
}

_BILLING_PROMPT = """You are a medical billing specialist. Suggest Medicare Benefits Schedule (MBS) item numbers for the consultation transcript below.

Rules:
- Consider the consultation type, its duration and the services provided
- Suggest only MBS items that apply
- Reply with a plain list and no headers

Visit Type: {visit_type}
Date: {date}

Transcript:
{transcript}

Reply with one suggestion per line in this format:
[Item Number] - [Brief description]
Example: 23 - Level B consultation (6-20 minutes)"""


def normalize_template(template: Optional[str]) -> str:
    """Resolve a template name; unknown names fall back to soap."""
    name = (template or "soap").strip().lower()
    name = _TEMPLATE_ALIASES.get(name, name)
    return name if name in NOTE_TEMPLATES else "soap"


def create_note_prompt(transcript: str, template: str = "soap", patient_name: str = "Patient",
                       visit_type: str = "General consultation", now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    title, extra_rules, outline = _NOTE_OUTLINES[normalize_template(template)]
    preamble = _NOTE_PREAMBLE.format(
        title=title,
        extra_rules=extra_rules,
        patient_name=patient_name,
        visit_type=visit_type,
        date=now.strftime("%Y-%m-%d"),
        time=now.strftime("%H:%M"),
        transcript=transcript,
    )
    return preamble + outline


def create_billing_prompt(transcript: str, visit_type: str = "General consultation",
                          now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return _BILLING_PROMPT.format(visit_type=visit_type, date=now.strftime("%Y-%m-%d"), transcript=transcript)
