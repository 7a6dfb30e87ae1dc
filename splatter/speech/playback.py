"""Audio playback and the on-device speech fallback."""

import asyncio
import logging
from typing import Optional

import pyaudio
import pyttsx3

from ..errors import SpeechFailedError
from ..models.audio import SpeechAudio

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Plays synthesized PCM on the default output device."""

    def __init__(self, chunk_size: int = 1024):
        self.chunk_size = chunk_size

    async def play(self, audio: SpeechAudio) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_blocking, audio)

    def _play_blocking(self, audio: SpeechAudio) -> None:
        pa = pyaudio.PyAudio()
        stream = None
        try:
            stream = pa.open(format=pyaudio.paInt16, channels=1, rate=audio.sample_rate, output=True)
            step = self.chunk_size * 2
            for offset in range(0, len(audio.pcm), step):
                stream.write(audio.pcm[offset:offset + step])
        except OSError as e:
            raise SpeechFailedError(f"Audio playback failed: {e}") from e
        finally:
            if stream is not None:
                stream.stop_stream()
                stream.close()
            pa.terminate()


class LocalSpeechSynthesizer:
    """Offline text-to-speech through pyttsx3, used when the speech service fails."""

    def __init__(self, rate_factor: float = 0.9, volume: float = 0.8):
        self.rate_factor = rate_factor
        self.volume = volume
        self._engine: Optional[pyttsx3.Engine] = None

    def _get_engine(self) -> pyttsx3.Engine:
        if self._engine is None:
            self._engine = pyttsx3.init()
            rate = self._engine.getProperty('rate')
            self._engine.setProperty('rate', int(rate * self.rate_factor))
            self._engine.setProperty('volume', self.volume)
        return self._engine

    async def speak(self, text: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._speak_blocking, text)

    def _speak_blocking(self, text: str) -> None:
        try:
            engine = self._get_engine()
            engine.say(text)
            engine.runAndWait()
        except Exception as e:
            raise SpeechFailedError(f"On-device speech failed: {e}") from e
