"""Local persistence for consultation history."""

from .consultation_store import ConsultationStore

__all__ = ["ConsultationStore"]
