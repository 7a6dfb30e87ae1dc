"""Frequency-domain loudness analysis over the most recent microphone samples."""

import logging

import numpy as np
from scipy.signal import get_window

from ..errors import AudioGraphError

logger = logging.getLogger(__name__)


class FrequencyAnalyser:
    """Byte-scaled frequency magnitudes in the manner of a Web Audio AnalyserNode.

    Keeps the last ``fft_size`` samples, applies a Blackman window, and smooths
    bin magnitudes over time before mapping them onto 0..255 between
    ``min_decibels`` and ``max_decibels``.
    """

    def __init__(self, fft_size: int = 512, smoothing_time_constant: float = 0.8,
                 min_decibels: float = -100.0, max_decibels: float = -30.0):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise AudioGraphError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing_time_constant <= 1.0:
            raise AudioGraphError(f"smoothing_time_constant out of range: {smoothing_time_constant}")
        if min_decibels >= max_decibels:
            raise AudioGraphError("min_decibels must be below max_decibels")

        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = get_window("blackman", fft_size)
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)
        self.closed = False

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def write_pcm16(self, chunk: bytes) -> None:
        """Append little-endian 16-bit mono PCM to the sample window."""
        if self.closed or not chunk:
            return
        samples = np.frombuffer(chunk, dtype='<i2').astype(np.float64) / 32768.0
        if len(samples) >= self.fft_size:
            self._samples = samples[-self.fft_size:].copy()
        else:
            self._samples = np.concatenate((self._samples[len(samples):], samples))

    def get_byte_frequency_data(self) -> np.ndarray:
        if self.closed:
            raise AudioGraphError("Analyser has been closed")

        spectrum = np.fft.rfft(self._samples * self._window)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        with np.errstate(divide='ignore'):
            decibels = 20.0 * np.log10(self._smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor(scale * (decibels - self.min_decibels))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def close(self) -> None:
        self.closed = True
