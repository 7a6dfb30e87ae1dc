"""Services layer for the companion's conversation logic."""

from .recording_service import RecordingSessionController
from .caption_service import LiveCaptionEngine
from .conversation_log import ConversationLog
from .orchestrator import ConversationOrchestrator, GREETING

__all__ = [
    "RecordingSessionController",
    "LiveCaptionEngine",
    "ConversationLog",
    "ConversationOrchestrator",
    "GREETING",
]
