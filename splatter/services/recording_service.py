"""Recording session controller: owns the microphone and the capture buffer."""

import asyncio
import logging
from typing import Callable, Optional

from ..audio.capture import MicrophoneDevice
from ..config import CaptureSettings
from ..errors import DeviceUnavailableError, SplatterError
from ..models.audio import AudioClip
from ..models.session import CaptureSession, RecorderState
from ..models.transcription import TranscriptionResult
from ..transcription.base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)


class RecordingSessionController:
    """Starts and stops captures and hands each finished clip to transcription.

    The capture session (and its stream) outlives a single recording when
    ``retain_stream`` is set, which is how voice detection keeps listening
    between utterances. Every stop() enqueues exactly one transcription call.
    """

    def __init__(self,
                 device: MicrophoneDevice,
                 transcriber: AbstractTranscriptionBackend,
                 settings: CaptureSettings):
        """Initialize the controller.

        Args:
            device: The only source of microphone streams
            transcriber: Receives each finished clip
            settings: Capture constraints (also used to encode clips)
        """
        self.device = device
        self.transcriber = transcriber
        self.settings = settings

        self.session: Optional[CaptureSession] = None
        self.retain_stream = False
        self.epoch = 0
        self.transcriptions_enqueued = 0
        # Set by the owner to hear about a device that dies mid-session
        self.on_failure: Optional[Callable[[SplatterError], None]] = None

    @property
    def recorder_state(self) -> RecorderState:
        if self.session is None:
            return RecorderState.IDLE
        return self.session.recorder_state

    @property
    def is_recording(self) -> bool:
        return self.recorder_state is RecorderState.RECORDING

    async def open_session(self) -> CaptureSession:
        """Return the open capture session, acquiring the microphone if needed.

        Raises:
            PermissionDeniedError: Access to the microphone was refused
            DeviceUnavailableError: No input device exists
        """
        if self.session is not None and not self.session.is_released:
            return self.session

        stream = await self.device.acquire()
        self.session = CaptureSession(stream=stream)
        stream.on_failure = self._on_stream_failure
        logger.info("Capture session opened")
        return self.session

    async def start(self, retain_stream: bool = False) -> int:
        """Begin buffering audio. A no-op returning the current epoch when already recording.

        Args:
            retain_stream: Keep the stream open after stop() (voice detection mode)

        Returns:
            The epoch of the recording now in progress
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return self.epoch

        session = await self.open_session()
        if self.is_recording:
            # Another start() won the race while the device was being acquired
            return self.epoch

        self.retain_stream = retain_stream
        self.epoch += 1
        session.epoch = self.epoch
        session.chunks = []
        session.recorder_state = RecorderState.RECORDING
        session.stream.add_listener(session.add_chunk)

        logger.info(f"Recording started (epoch {self.epoch}, retain_stream={retain_stream})")
        return self.epoch

    def stop(self) -> Optional["asyncio.Task[TranscriptionResult]"]:
        """Finish the recording and enqueue its transcription.

        Returns:
            The transcription task, or None when nothing was recording
        """
        if not self.is_recording:
            logger.warning("No recording in progress")
            return None

        session = self.session
        session.stream.remove_listener(session.add_chunk)
        session.recorder_state = RecorderState.STOPPED
        clip = AudioClip.from_chunks(session.chunks, self.settings.sample_rate, self.settings.channels)
        logger.info(f"Recording stopped (epoch {session.epoch}): {len(session.chunks)} chunks, "
                    f"{clip.duration_seconds:.2f}s")

        if not self.retain_stream:
            self.release()

        self.transcriptions_enqueued += 1
        return asyncio.ensure_future(self.transcriber.transcribe(clip))

    def abort(self) -> None:
        """End the recording without transcribing it (errors and teardown)."""
        if not self.is_recording:
            return
        session = self.session
        session.stream.remove_listener(session.add_chunk)
        session.recorder_state = RecorderState.STOPPED
        session.chunks = []
        logger.info(f"Recording aborted (epoch {session.epoch})")
        if not self.retain_stream:
            self.release()

    def _on_stream_failure(self, error: OSError) -> None:
        logger.error(f"Microphone failed mid-session: {error}")
        failure = DeviceUnavailableError(f"Microphone stopped delivering audio: {error}")
        if self.on_failure is not None:
            self.on_failure(failure)
            return
        # Nobody to route the failure through: drop the recording and the device here
        self.abort()
        self.release()

    def release(self) -> None:
        """Stop every track of the stream and forget the session."""
        if self.session is None:
            return
        session = self.session
        self.session = None
        if session.recorder_state is RecorderState.RECORDING:
            session.stream.remove_listener(session.add_chunk)
            session.recorder_state = RecorderState.STOPPED
        session.stream.release()
        logger.info("Capture session released")
