"""MedScribe: real-time medical transcription with clinical note generation."""

__version__ = "0.1.0"
