"""Speech synthesis and playback."""

from .elevenlabs_engine import ElevenLabsSpeechEngine
from .playback import AudioPlayer, LocalSpeechSynthesizer

__all__ = ["ElevenLabsSpeechEngine", "AudioPlayer", "LocalSpeechSynthesizer"]
