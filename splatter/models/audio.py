"""Audio-related data models."""

import io
import wave
from dataclasses import dataclass
from typing import List


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int


@dataclass
class AudioClip:
    """One finished utterance, ready for transcription."""
    data: bytes  # WAV container, 16-bit PCM
    sample_rate: int
    channels: int
    duration_seconds: float
    content_type: str = "audio/wav"
    filename: str = "recording.wav"

    @classmethod
    def from_chunks(cls, chunks: List[bytes], sample_rate: int, channels: int = 1) -> 'AudioClip':
        """Assemble raw 16-bit PCM fragments into a single WAV clip."""
        pcm = b''.join(chunks)
        buffer = io.BytesIO()
        with wave.open(buffer, 'wb') as wf:
            wf.setnchannels(channels)
            wf.setsampwidth(2)  # 16-bit audio
            wf.setframerate(sample_rate)
            wf.writeframes(pcm)

        duration = len(pcm) / (sample_rate * channels * 2) if sample_rate else 0.0
        return cls(
            data=buffer.getvalue(),
            sample_rate=sample_rate,
            channels=channels,
            duration_seconds=duration,
        )

    @property
    def is_empty(self) -> bool:
        return self.duration_seconds <= 0


@dataclass
class SpeechAudio:
    """Synthesized speech as raw 16-bit mono PCM."""
    pcm: bytes
    sample_rate: int
