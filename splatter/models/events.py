"""Event models passed between the voice pipeline components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import ErrorKind


class CompanionEventType(Enum):
    """Inputs to the orchestrator's transition function."""
    TAP = "tap"
    VOICE_START = "voice_start"
    VOICE_STOP = "voice_stop"
    TRANSCRIPT_FINAL = "transcript_final"
    TEXT_SUBMITTED = "text_submitted"
    ERROR = "error"


@dataclass
class CompanionEvent:
    type: CompanionEventType
    text: str = ""
    error: Optional[ErrorKind] = None
    epoch: Optional[int] = None

    @classmethod
    def failure(cls, kind: ErrorKind) -> 'CompanionEvent':
        return cls(CompanionEventType.ERROR, error=kind)


class VadDecisionType(Enum):
    START = "start"
    STOP = "stop"


@dataclass
class VadDecision:
    """A start or stop request emitted by the voice activity classifier."""
    type: VadDecisionType
    timestamp: float
    epoch: Optional[int] = None
    speech_seconds: float = 0.0
    silence_seconds: float = 0.0


@dataclass
class LevelReading:
    """One loudness sample from the level sampler."""
    level_db: float
    is_active: bool
    timestamp: float


@dataclass
class CaptionEvent:
    """Live caption update for display."""
    text: str
    is_final: bool
    final_transcript: str = ""
    interim_transcript: str = ""
    display_text: str = field(default="")
