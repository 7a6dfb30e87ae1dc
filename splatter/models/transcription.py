"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class TranscriptionResult:
    """Result of a transcription operation."""
    text: str
    processing_time: float
    service: str
    language: str = "en"
    timestamp: datetime = field(default_factory=datetime.now)
    audio_duration_seconds: Optional[float] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())
