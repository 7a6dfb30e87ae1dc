"""Microphone stream with a background reader thread and event-loop delivery."""

import asyncio
import logging
import time
from datetime import datetime
from threading import Thread, Event
from typing import Callable, List, Optional

import pyaudio

from ..config import CaptureSettings
from ..errors import DeviceUnavailableError, PermissionDeniedError
from ..models.audio import AudioStats

logger = logging.getLogger(__name__)

ChunkListener = Callable[[bytes], None]
FailureListener = Callable[[OSError], None]

# PortAudio codes that mean "no usable input device" rather than "access refused"
_MISSING_DEVICE_CODES = {pyaudio.paInvalidDevice, pyaudio.paDeviceUnavailable}


class MicrophoneStream:
    """Live microphone input shared by the recorder, the level sampler and captions.

    Chunks are read on a background thread and handed to listeners on the
    event loop thread, so listeners never run concurrently with the core.
    Once released, the stream delivers nothing more: late chunks are dropped.
    A read failure while open is reported once through ``on_failure``, also
    on the event loop thread.
    """

    def __init__(self, settings: CaptureSettings, loop: Optional[asyncio.AbstractEventLoop] = None,
                 on_failure: Optional[FailureListener] = None):
        """Initialize the stream (the device is not touched until open()).

        Args:
            settings: Sample rate, channel count, chunk size and processing constraints
            loop: Event loop that listeners run on; defaults to the running loop
            on_failure: Called when the device stops delivering audio mid-session
        """
        self.settings = settings
        self.format = pyaudio.paInt16
        self.loop = loop
        self.on_failure = on_failure
        self.failed = False

        self.listeners: List[ChunkListener] = []
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_open = False
        self.is_released = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self._stream = None

    @property
    def sample_rate(self) -> int:
        return self.settings.sample_rate

    @property
    def channels(self) -> int:
        return self.settings.channels

    def open(self) -> None:
        """Acquire the input device and start the reader thread.

        Blocking; call through run_in_executor from async code.

        Raises:
            DeviceUnavailableError: No input device exists
            PermissionDeniedError: The device exists but could not be opened
        """
        if self.is_open:
            logger.warning("Microphone stream already open")
            return
        if self.is_released:
            raise RuntimeError("Cannot reopen a released microphone stream")

        if self.loop is None:
            raise RuntimeError("MicrophoneStream needs an event loop before open()")

        self.pyaudio_instance = pyaudio.PyAudio()
        try:
            if self.pyaudio_instance.get_device_count() == 0:
                raise DeviceUnavailableError("No audio devices found")
            try:
                self.pyaudio_instance.get_default_input_device_info()
            except (IOError, OSError) as e:
                raise DeviceUnavailableError(f"No default input device: {e}") from e

            self._stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.settings.channels,
                rate=self.settings.sample_rate,
                input=True,
                frames_per_buffer=self.settings.chunk_size,
                stream_callback=None
            )
        except (DeviceUnavailableError, PermissionDeniedError):
            self._terminate()
            raise
        except OSError as e:
            self._terminate()
            if e.errno in _MISSING_DEVICE_CODES:
                raise DeviceUnavailableError(str(e)) from e
            raise PermissionDeniedError(str(e)) from e

        # PortAudio has no echo cancellation or noise suppression switches; those
        # constraints are left to the OS input chain.
        logger.info(f"Audio stream opened: {self.settings.sample_rate}Hz, "
                    f"{self.settings.channels} channel(s), {self.settings.chunk_size} samples/chunk, "
                    f"echo_cancellation={self.settings.echo_cancellation}, "
                    f"noise_suppression={self.settings.noise_suppression}")

        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_chunks = 0
        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "MicrophoneReaderThread"
        self.recording_thread.start()
        self.is_open = True

    def add_listener(self, listener: ChunkListener) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener: ChunkListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def release(self) -> None:
        """Stop all tracks and free the device. Safe to call more than once.

        Does not wait for the reader thread: it sees the stop event after its
        current read and closes the device itself.
        """
        if self.is_released:
            return
        self.is_released = True
        self.listeners.clear()
        self.on_failure = None

        if not self.is_open:
            self._terminate()
            return

        logger.info("Releasing microphone stream")
        self.stop_event.set()
        self.is_open = False
        logger.info(f"Microphone released. Total chunks: {self.total_chunks}")

    def join(self, timeout: float = 2.0) -> bool:
        """Block until the reader thread has closed the device. Returns False on timeout."""
        if self.recording_thread is None:
            return True
        self.recording_thread.join(timeout=timeout)
        if self.recording_thread.is_alive():
            logger.warning("Microphone reader thread did not stop cleanly")
            return False
        return True

    def _deliver(self, chunk: bytes) -> None:
        """Runs on the event loop thread."""
        if self.is_released:
            return
        for listener in list(self.listeners):
            listener(chunk)

    def _fail(self, error: OSError) -> None:
        """Runs on the event loop thread."""
        if self.is_released or self.failed:
            return
        self.failed = True
        self.listeners.clear()
        if self.on_failure is not None:
            self.on_failure(error)

    def _record_continuously(self) -> None:
        """Internal method: continuous read loop in background thread."""
        try:
            while not self.stop_event.is_set():
                chunk = self._stream.read(self.settings.chunk_size, exception_on_overflow=False)
                self.total_chunks += 1
                try:
                    self.loop.call_soon_threadsafe(self._deliver, chunk)
                except RuntimeError:
                    # Event loop already closed
                    break
        except OSError as e:
            if not self.stop_event.is_set():
                logger.error(f"Microphone read failed: {e}")
                try:
                    self.loop.call_soon_threadsafe(self._fail, e)
                except RuntimeError:
                    logger.debug("Event loop closed before the read failure could be reported")
        finally:
            if self._stream:
                self._stream.stop_stream()
                self._stream.close()
                self._stream = None
            self._terminate()

    def _terminate(self) -> None:
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def get_recording_stats(self) -> AudioStats:
        """Get current stream statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_open,
            duration_seconds=duration,
            sample_rate=self.settings.sample_rate,
            chunk_size=self.settings.chunk_size,
            total_chunks=self.total_chunks,
        )


class MicrophoneDevice:
    """Factory for microphone streams; the only place the device is acquired."""

    def __init__(self, settings: CaptureSettings):
        self.settings = settings

    async def acquire(self) -> MicrophoneStream:
        loop = asyncio.get_running_loop()
        stream = MicrophoneStream(self.settings, loop=loop)
        started = time.monotonic()
        await loop.run_in_executor(None, stream.open)
        logger.debug(f"Microphone acquired in {time.monotonic() - started:.3f}s")
        return stream
