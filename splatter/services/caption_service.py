"""Live caption engine: best-effort streaming captions while listening."""

import logging
from functools import partial
from typing import Optional

from pubsub import pub

from ..audio.capture import MicrophoneStream
from ..config import CaptionSettings
from ..errors import CaptionUnsupportedError
from ..models.events import CaptionEvent
from ..scheduling import Scheduler, TimerHandle
from ..transcription.base import AbstractCaptionBackend, CaptionStream

logger = logging.getLogger(__name__)

CAPTION_TOPIC = "captions.update"


class LiveCaptionEngine:
    """Runs a streaming recognizer alongside a recording, for display only.

    Final segments accumulate in ``final_transcript``; the unconfirmed tail is
    kept in ``interim_transcript``. Each start()/stop() cycle bumps a
    generation counter, and callbacks from an older generation are ignored,
    so a stop always silences the engine even if a restart was in flight.
    """

    def __init__(self,
                 backend: Optional[AbstractCaptionBackend],
                 scheduler: Scheduler,
                 settings: Optional[CaptionSettings] = None):
        self.backend = backend
        self.scheduler = scheduler
        self.settings = settings or CaptionSettings()

        self.final_transcript = ""
        self.interim_transcript = ""
        self.auto_restart = True
        self.restarts = 0
        self.is_supported = backend is not None and self.settings.enabled

        self._active = False
        self._generation = 0
        self._stream: Optional[MicrophoneStream] = None
        self._caption_stream: Optional[CaptionStream] = None
        self._restart_handle: Optional[TimerHandle] = None
        self._last_restart_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def display_text(self) -> str:
        return self.final_transcript + self.interim_transcript

    def confirmed_length(self) -> int:
        return len(self.final_transcript.strip())

    def start(self, stream: MicrophoneStream) -> bool:
        """Begin captioning ``stream``. Returns False when captions are unavailable."""
        if self._active:
            return True
        if not self.is_supported:
            logger.debug("Live captions unavailable; continuing without them")
            return False

        self._active = True
        self._generation += 1
        self._stream = stream
        self._last_restart_at = None
        self._clear()
        return self._open()

    def stop(self) -> None:
        """Stop captioning and clear both accumulators."""
        was_active = self._active
        self._active = False
        self._generation += 1

        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
        self._close_stream()
        self._stream = None
        self._clear()
        if was_active:
            logger.debug("Live captions stopped")

    def _open(self) -> bool:
        generation = self._generation
        try:
            self._caption_stream = self.backend.open_stream(
                on_result=partial(self._on_result, generation),
                on_end=partial(self._on_end, generation),
            )
        except CaptionUnsupportedError as e:
            logger.warning(f"Speech recognition not supported: {e}")
            self.is_supported = False
            self._active = False
            return False
        except Exception as e:
            logger.error(f"Failed to open caption stream: {e}")
            self._active = False
            return False

        self._stream.add_listener(self._feed)
        logger.debug(f"Caption stream opened (generation {generation})")
        return True

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.remove_listener(self._feed)
        if self._caption_stream is not None:
            self._caption_stream.close()
            self._caption_stream = None

    def _feed(self, chunk: bytes) -> None:
        if self._caption_stream is not None:
            self._caption_stream.feed(chunk)

    def _on_result(self, generation: int, text: str, is_final: bool) -> None:
        if generation != self._generation or not self._active:
            return

        if is_final:
            self.final_transcript += text
            self.interim_transcript = ""
        else:
            self.interim_transcript = text

        pub.sendMessage(CAPTION_TOPIC, event=CaptionEvent(
            text=text,
            is_final=is_final,
            final_transcript=self.final_transcript,
            interim_transcript=self.interim_transcript,
            display_text=self.display_text,
        ))

    def _on_end(self, generation: int, error: Optional[Exception]) -> None:
        if generation != self._generation or not self._active:
            return

        self._close_stream()
        if error is not None:
            logger.warning(f"Speech recognition error: {error}")
        if not self.auto_restart:
            logger.debug("Caption stream ended; voice detection governs this recording")
            return

        now = self.scheduler.now()
        wait = 0.0
        if self._last_restart_at is not None:
            wait = self.settings.min_restart_interval_seconds - (now - self._last_restart_at)
        if wait > 0:
            logger.debug(f"Delaying caption restart by {wait:.2f}s")
            self._restart_handle = self.scheduler.call_later(wait, self._restart, generation)
        else:
            self._restart(generation)

    def _restart(self, generation: int) -> None:
        self._restart_handle = None
        if generation != self._generation or not self._active:
            return
        self.restarts += 1
        self._last_restart_at = self.scheduler.now()
        logger.info(f"Restarting live captions (restart #{self.restarts})")
        self._open()

    def _clear(self) -> None:
        self.final_transcript = ""
        self.interim_transcript = ""
