"""Pytest configuration and fixtures for Splatter tests."""

import pytest
import logging
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
from pubsub import pub

from splatter.config import CaptionSettings, CaptureSettings, VadSettings
from splatter.errors import TranscriptionFailedError
from splatter.models.audio import SpeechAudio
from splatter.models.transcription import TranscriptionResult


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no hardware or network")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


class FakeTimer:
    def __init__(self, when: float, seq: int, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manually advanced clock. Times are rounded to 9 decimals to keep frame math exact."""

    def __init__(self, start: float = 0.0):
        self.time = start
        self.timers: List[FakeTimer] = []
        self._seq = 0

    def now(self) -> float:
        return self.time

    def call_later(self, delay, callback, *args) -> FakeTimer:
        self._seq += 1
        timer = FakeTimer(round(self.time + max(0.0, delay), 9), self._seq, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance_to(self, target: float) -> None:
        """Run every timer due at or before ``target``, in order, then move the clock there."""
        target = round(target, 9)
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self.timers.remove(timer)
            self.time = max(self.time, timer.when)
            timer.callback(*timer.args)
        self.time = max(self.time, target)

    def advance(self, seconds: float) -> None:
        self.advance_to(self.time + seconds)


class FakeStream:
    """Stand-in for MicrophoneStream: chunks are pushed by the test."""

    def __init__(self):
        self.listeners = []
        self.is_released = False
        self.release_count = 0
        self.on_failure = None

    def add_listener(self, listener) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def emit(self, chunk: bytes) -> None:
        if self.is_released:
            return
        for listener in list(self.listeners):
            listener(chunk)

    def fail(self, error: OSError) -> None:
        """The device stops delivering audio."""
        self.listeners.clear()
        if self.on_failure is not None:
            self.on_failure(error)

    def release(self) -> None:
        self.release_count += 1
        self.is_released = True
        self.listeners.clear()


class FakeDevice:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.acquisitions = 0
        self.streams: List[FakeStream] = []

    async def acquire(self) -> FakeStream:
        self.acquisitions += 1
        if self.error is not None:
            raise self.error
        stream = FakeStream()
        self.streams.append(stream)
        return stream


class FakeTranscriber:
    def __init__(self, text: str = "I went for a walk by the river", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.clips = []

    async def transcribe(self, clip) -> TranscriptionResult:
        self.clips.append(clip)
        if self.error is not None:
            raise self.error
        if not self.text:
            raise TranscriptionFailedError("No speech detected")
        return TranscriptionResult(text=self.text, processing_time=0.01, service="fake")


class FakeCompletion:
    def __init__(self, reply: str = "What made that walk feel special?", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[str] = []

    async def complete(self, user_text: str) -> str:
        self.calls.append(user_text)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSpeech:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    async def synthesize(self, text: str) -> SpeechAudio:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return SpeechAudio(pcm=b'\x00\x00' * 100, sample_rate=22050)


class FakePlayer:
    def __init__(self):
        self.played = []

    async def play(self, audio) -> None:
        self.played.append(audio)


class FakeLocalVoice:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.spoken: List[str] = []

    async def speak(self, text: str) -> None:
        self.spoken.append(text)
        if self.error is not None:
            raise self.error


class FakeCaptionStream:
    def __init__(self):
        self.fed: List[bytes] = []
        self.closed = False

    def feed(self, audio_chunk: bytes) -> None:
        self.fed.append(audio_chunk)

    def close(self) -> None:
        self.closed = True


class FakeCaptionBackend:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.opened: List[FakeCaptionStream] = []
        self.on_result = None
        self.on_end = None

    def open_stream(self, on_result, on_end) -> FakeCaptionStream:
        if self.error is not None:
            raise self.error
        self.on_result = on_result
        self.on_end = on_end
        stream = FakeCaptionStream()
        self.opened.append(stream)
        return stream


class TopicRecorder:
    """Collects display-sink messages published by the companion."""

    def __init__(self):
        self.phases = []
        self.transcripts = []
        self.replies = []
        self.errors = []
        self.captions = []

    # Listener signatures match the message data of each topic
    def on_phase(self, phase, previous):
        self.phases.append(phase)

    def on_transcript(self, text):
        self.transcripts.append(text)

    def on_reply(self, text):
        self.replies.append(text)

    def on_error(self, kind, message):
        self.errors.append(kind)

    def on_caption(self, event):
        self.captions.append(event)

    def subscribe(self) -> None:
        pub.subscribe(self.on_phase, "companion.phase")
        pub.subscribe(self.on_transcript, "companion.transcript")
        pub.subscribe(self.on_reply, "companion.reply")
        pub.subscribe(self.on_error, "companion.error")
        pub.subscribe(self.on_caption, "captions.update")

    def close(self) -> None:
        pub.unsubscribe(self.on_phase, "companion.phase")
        pub.unsubscribe(self.on_transcript, "companion.transcript")
        pub.unsubscribe(self.on_reply, "companion.reply")
        pub.unsubscribe(self.on_error, "companion.error")
        pub.unsubscribe(self.on_caption, "captions.update")


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def vad_settings():
    return VadSettings()


@pytest.fixture
def capture_settings():
    # Frame ticks far in the future so tests drive frames explicitly
    return CaptureSettings(sample_rate=16000, chunk_size=1024, frame_interval_seconds=1000.0)


@pytest.fixture
def caption_settings():
    return CaptionSettings()


@pytest.fixture
def topics():
    recorder = TopicRecorder()
    recorder.subscribe()
    yield recorder
    recorder.close()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_device_count.return_value = 2
        mock_pyaudio_instance.get_default_input_device_info.return_value = {'name': 'Test Mic'}

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", samples=1024, amplitude=1.0):
        """Generate 16-bit mono PCM for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            samples: Number of samples
            amplitude: Peak amplitude in 0..1

        Returns:
            bytes: Audio data as bytes
        """
        if pattern == "sine":
            t = np.arange(samples) / 16000
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            rng = np.random.default_rng(1234)
            wave_data = rng.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        audio_data = (wave_data * amplitude * 32767).astype(np.int16)
        return audio_data.tobytes()

    return generate_audio


@pytest.fixture
def fakes():
    """Fake collaborators, by role."""
    return SimpleNamespace(
        Stream=FakeStream,
        Device=FakeDevice,
        Transcriber=FakeTranscriber,
        Completion=FakeCompletion,
        Speech=FakeSpeech,
        Player=FakePlayer,
        LocalVoice=FakeLocalVoice,
        CaptionBackend=FakeCaptionBackend,
    )
