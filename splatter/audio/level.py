"""Frame-cadence loudness sampling for voice activity detection."""

import logging
import math
from typing import Callable, Optional

import numpy as np

from ..config import CaptureSettings
from ..errors import AudioGraphError
from ..scheduling import Scheduler, TimerHandle
from .analyser import FrequencyAnalyser
from .capture import MicrophoneStream

logger = logging.getLogger(__name__)


def compute_level_db(byte_data: np.ndarray) -> float:
    """Mean of the byte magnitudes expressed as 20*log10(mean/255); silence is -inf."""
    if len(byte_data) == 0:
        return -math.inf
    average = float(np.mean(byte_data))
    if average <= 0:
        return -math.inf
    return 20.0 * math.log10(average / 255.0)


class AudioLevelSampler:
    """Reads one loudness value per frame from a live stream until stopped.

    The analyser is attached to the stream on start() and detached and closed
    exactly once, whichever way sampling ends.
    """

    def __init__(self,
                 scheduler: Scheduler,
                 settings: CaptureSettings,
                 consumer: Callable[[float, float], None],
                 on_error: Optional[Callable[[AudioGraphError], None]] = None):
        """Initialize the sampler.

        Args:
            scheduler: Clock and frame timer source
            settings: Analyser geometry and frame interval
            consumer: Called synchronously with (level_db, timestamp) every frame
            on_error: Called once if the analyser fails after start
        """
        self.scheduler = scheduler
        self.settings = settings
        self.consumer = consumer
        self.on_error = on_error

        self.analyser: Optional[FrequencyAnalyser] = None
        self.stream: Optional[MicrophoneStream] = None
        self.frames_sampled = 0
        self.releases = 0
        self._handle: Optional[TimerHandle] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, stream: MicrophoneStream) -> None:
        """Attach an analyser to ``stream`` and begin frame polling.

        Raises:
            AudioGraphError: The analyser could not be built for this stream
        """
        if self._running:
            logger.warning("Level sampler already running")
            return
        if stream.is_released:
            raise AudioGraphError("Cannot sample a released stream")

        try:
            self.analyser = FrequencyAnalyser(
                fft_size=self.settings.fft_size,
                smoothing_time_constant=self.settings.smoothing_time_constant,
            )
        except AudioGraphError:
            raise
        except Exception as e:
            raise AudioGraphError(f"Failed to create analyser: {e}") from e

        stream.add_listener(self.analyser.write_pcm16)
        self.stream = stream
        self._running = True
        logger.info(f"Level sampling started (fft_size={self.settings.fft_size}, "
                    f"interval={self.settings.frame_interval_seconds * 1000:.1f}ms)")
        self._schedule_next()

    def stop(self) -> None:
        """Stop polling and release the analyser. Safe to call more than once."""
        if not self._running:
            return
        self._running = False

        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self.stream is not None and self.analyser is not None:
            self.stream.remove_listener(self.analyser.write_pcm16)
        if self.analyser is not None:
            self.analyser.close()
        self.analyser = None
        self.stream = None
        self.releases += 1
        logger.info(f"Level sampling stopped after {self.frames_sampled} frames")

    def _schedule_next(self) -> None:
        self._handle = self.scheduler.call_later(self.settings.frame_interval_seconds, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return

        try:
            level_db = compute_level_db(self.analyser.get_byte_frequency_data())
            self.frames_sampled += 1
            self.consumer(level_db, self.scheduler.now())
        except Exception as e:
            logger.error(f"Voice activity detection error: {e}", exc_info=True)
            self.stop()
            if self.on_error:
                error = e if isinstance(e, AudioGraphError) else AudioGraphError(str(e))
                self.on_error(error)
            return

        if self._running:
            self._schedule_next()
