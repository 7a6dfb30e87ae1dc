"""Data models for the Splatter companion."""

from .audio import AudioStats, AudioClip, SpeechAudio
from .transcription import TranscriptionResult
from .session import (
    AppPhase,
    RecorderState,
    CaptureSession,
    ConversationMessage,
    ConversationSession,
)
from .events import (
    CompanionEventType,
    CompanionEvent,
    VadDecisionType,
    VadDecision,
    LevelReading,
    CaptionEvent,
)

__all__ = [
    "AudioStats",
    "AudioClip",
    "SpeechAudio",
    "TranscriptionResult",
    "AppPhase",
    "RecorderState",
    "CaptureSession",
    "ConversationMessage",
    "ConversationSession",
    "CompanionEventType",
    "CompanionEvent",
    "VadDecisionType",
    "VadDecision",
    "LevelReading",
    "CaptionEvent",
]
