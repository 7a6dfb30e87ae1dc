"""Audio capture and level analysis module."""

from .capture import MicrophoneStream, MicrophoneDevice
from .analyser import FrequencyAnalyser
from .level import AudioLevelSampler, compute_level_db

__all__ = [
    'MicrophoneStream',
    'MicrophoneDevice',
    'FrequencyAnalyser',
    'AudioLevelSampler',
    'compute_level_db',
]
