"""Session and conversation data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AppPhase(str, Enum):
    """Outward-visible companion state."""
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    TEXT_FALLBACK = "text_fallback"


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass
class CaptureSession:
    """One open microphone acquisition, reused across recordings in VAD mode."""
    stream: Any  # MicrophoneStream
    recorder_state: RecorderState = RecorderState.IDLE
    chunks: List[bytes] = field(default_factory=list)
    epoch: int = 0
    opened_at: datetime = field(default_factory=datetime.now)

    @property
    def is_released(self) -> bool:
        return self.stream.is_released

    def add_chunk(self, chunk: bytes) -> None:
        if self.recorder_state is RecorderState.RECORDING and chunk:
            self.chunks.append(chunk)


@dataclass
class ConversationMessage:
    """One exchange: what the user said and what the companion replied."""
    user_message: str
    ai_response: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_row(self) -> Dict[str, str]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "userMessage": self.user_message,
            "aiResponse": self.ai_response,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ConversationMessage':
        timestamp = row.get("timestamp")
        return cls(
            user_message=row.get("userMessage", ""),
            ai_response=row.get("aiResponse", ""),
            timestamp=datetime.fromisoformat(timestamp.replace("Z", "+00:00")) if timestamp else datetime.now(),
        )


@dataclass
class ConversationSession:
    """A stored conversation for one device."""
    session_id: str
    device_id: str
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    conversation: List[ConversationMessage] = field(default_factory=list)
