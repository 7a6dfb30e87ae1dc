"""Voice activity classifier: turns loudness frames into start/stop decisions."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import VadSettings
from ..models.events import VadDecision, VadDecisionType
from ..scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class VadState:
    """Volatile per-frame detection state."""
    consecutive_voice_frames: int = 0
    is_voice_active: bool = False
    speech_started_at: Optional[float] = None
    last_voice_at: Optional[float] = None
    last_level_db: float = float("-inf")


class VoiceActivityClassifier:
    """Applies a loudness threshold with consecutive-frame confirmation.

    The classifier never touches the recorder. It emits a START decision when
    speech is confirmed and no capture is active, and schedules a STOP
    decision once silence has lasted long enough. A scheduled stop carries
    the capture epoch it was created for; if the epoch has moved on by the
    time it fires, it is discarded.
    """

    def __init__(self,
                 settings: VadSettings,
                 scheduler: Scheduler,
                 on_decision: Callable[[VadDecision], None],
                 confirmed_length: Optional[Callable[[], int]] = None):
        """Initialize the classifier.

        Args:
            settings: Thresholds and timing constants
            scheduler: Clock and timer source for the delayed stop
            on_decision: Receives every START and STOP decision
            confirmed_length: Length of the confirmed caption transcript, used
                by the short-pause rule; None disables that rule
        """
        self.settings = settings
        self.scheduler = scheduler
        self.on_decision = on_decision
        self.confirmed_length = confirmed_length

        self.state = VadState()
        self.capture_active = False
        self.epoch = 0
        self.stale_timers_discarded = 0
        self._pending_stop: Optional[TimerHandle] = None
        self._start_requested_at: Optional[float] = None

    @property
    def has_pending_stop(self) -> bool:
        return self._pending_stop is not None

    def process(self, level_db: float, timestamp: float) -> Optional[VadDecision]:
        """Classify one frame. Returns the decision emitted synchronously, if any."""
        is_active = level_db > self.settings.start_threshold_db
        self.state.is_voice_active = is_active
        self.state.last_level_db = level_db

        if is_active:
            return self._on_voice_frame(timestamp)
        self._on_silent_frame(timestamp)
        return None

    def _on_voice_frame(self, timestamp: float) -> Optional[VadDecision]:
        self.state.consecutive_voice_frames += 1
        self.state.last_voice_at = timestamp
        self._cancel_pending_stop()

        if (self.state.consecutive_voice_frames == self.settings.confidence_frames
                and not self.capture_active):
            self._start_requested_at = timestamp
            decision = VadDecision(VadDecisionType.START, timestamp=timestamp)
            logger.info(f"Speech confirmed after {self.settings.confidence_frames} frames")
            self.on_decision(decision)
            return decision
        return None

    def _on_silent_frame(self, timestamp: float) -> None:
        self.state.consecutive_voice_frames = 0

        if not self.capture_active or self.state.speech_started_at is None:
            return
        if self._pending_stop is not None:
            return

        last_voice = self.state.last_voice_at
        if last_voice is None or last_voice < self.state.speech_started_at:
            last_voice = self.state.speech_started_at
        speech_seconds = timestamp - self.state.speech_started_at
        silence_seconds = timestamp - last_voice

        if self.should_stop(speech_seconds, silence_seconds):
            self._schedule_stop(timestamp, speech_seconds, silence_seconds)

    def should_stop(self, speech_seconds: float, silence_seconds: float) -> bool:
        """Stop rule: enough speech, then either a long silence or a short pause after real text."""
        if speech_seconds <= self.settings.min_speech_seconds:
            return False
        if silence_seconds > self.settings.long_silence_seconds:
            return True
        if not self.settings.caption_assisted_pause or self.confirmed_length is None:
            return False
        return (self.confirmed_length() > self.settings.short_pause_min_chars
                and silence_seconds > self.settings.short_pause_seconds)

    def _schedule_stop(self, timestamp: float, speech_seconds: float, silence_seconds: float) -> None:
        logger.debug(f"Scheduling stop: speech={speech_seconds:.2f}s silence={silence_seconds:.2f}s "
                     f"epoch={self.epoch}")
        self._pending_stop = self.scheduler.call_later(
            self.settings.stop_delay_seconds,
            self._fire_stop,
            self.epoch,
            speech_seconds,
            silence_seconds,
        )

    def _fire_stop(self, epoch: int, speech_seconds: float, silence_seconds: float) -> None:
        self._pending_stop = None
        if epoch != self.epoch or not self.capture_active:
            self.stale_timers_discarded += 1
            logger.info(f"Discarding stale stop timer (scheduled for epoch {epoch}, "
                        f"current epoch {self.epoch}, capturing={self.capture_active})")
            return

        self.state.speech_started_at = None
        decision = VadDecision(
            VadDecisionType.STOP,
            timestamp=self.scheduler.now(),
            epoch=epoch,
            speech_seconds=speech_seconds,
            silence_seconds=silence_seconds,
        )
        logger.info(f"Silence detected: stopping after {speech_seconds:.2f}s of speech, "
                    f"{silence_seconds:.2f}s of silence")
        self.on_decision(decision)

    def _cancel_pending_stop(self) -> None:
        if self._pending_stop is not None:
            self._pending_stop.cancel()
            self._pending_stop = None
            logger.debug("Pending stop cancelled by voice activity")

    def capture_started(self, epoch: int) -> None:
        """Called by the orchestrator once recording for ``epoch`` has begun."""
        self._cancel_pending_stop()
        self.capture_active = True
        self.epoch = epoch
        started = self._start_requested_at
        self.state.speech_started_at = started if started is not None else self.scheduler.now()
        self._start_requested_at = None

    def capture_stopped(self) -> None:
        """Called by the orchestrator whenever recording ends, for any reason."""
        self._cancel_pending_stop()
        self.capture_active = False
        self.state.speech_started_at = None
        self._start_requested_at = None

    def reset(self) -> None:
        """Forget all frame state (used when detection is switched off)."""
        self.capture_stopped()
        self.state = VadState()
