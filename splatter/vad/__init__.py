"""Voice activity detection."""

from .classifier import VoiceActivityClassifier, VadState

__all__ = ["VoiceActivityClassifier", "VadState"]
