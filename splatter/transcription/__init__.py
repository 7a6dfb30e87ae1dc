"""Transcription module for Splatter."""

from .base import AbstractTranscriptionBackend, AbstractCaptionBackend, CaptionStream
from ..models.transcription import TranscriptionResult
from .whisper_backend import WhisperTranscriptionBackend

__all__ = [
    "AbstractTranscriptionBackend",
    "AbstractCaptionBackend",
    "CaptionStream",
    "TranscriptionResult",
    "WhisperTranscriptionBackend",
]
