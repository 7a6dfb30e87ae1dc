"""Abstract base class for transcription backends."""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import logging

from ..models.audio import AudioClip
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for utterance transcription backends."""

    def __init__(self, language: str = "en"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    async def transcribe(self, clip: AudioClip) -> TranscriptionResult:
        """Transcribe one finished clip.

        Args:
            clip: The recorded utterance

        Returns:
            TranscriptionResult with non-empty text

        Raises:
            TranscriptionFailedError: The service failed or heard nothing usable
        """
        pass


CaptionResultCallback = Callable[[str, bool], None]
CaptionEndCallback = Callable[[Optional[Exception]], None]


class CaptionStream(ABC):
    """One open streaming-recognition request."""

    @abstractmethod
    def feed(self, audio_chunk: bytes) -> None:
        """Queue raw 16-bit PCM for recognition. Must not block."""
        pass

    @abstractmethod
    def close(self) -> None:
        """End the request; no callbacks are guaranteed after this returns."""
        pass


class AbstractCaptionBackend(ABC):
    """Streaming recognizer used only for live on-screen captions."""

    @abstractmethod
    def open_stream(self, on_result: CaptionResultCallback, on_end: CaptionEndCallback) -> CaptionStream:
        """Open a recognition stream.

        Callbacks are delivered on the event loop thread. ``on_result`` gets
        (text, is_final); ``on_end`` gets the terminating error or None.

        Raises:
            CaptionUnsupportedError: Captioning is unavailable in this environment
        """
        pass
