"""Unit tests for FrequencyAnalyser, compute_level_db and AudioLevelSampler."""

import math

import numpy as np
import pytest

from splatter.audio.analyser import FrequencyAnalyser
from splatter.audio.level import AudioLevelSampler, compute_level_db
from splatter.config import CaptureSettings
from splatter.errors import AudioGraphError


@pytest.mark.unit
class TestFrequencyAnalyser:
    """Test cases for FrequencyAnalyser."""

    def test_bin_count_is_half_fft_size(self):
        analyser = FrequencyAnalyser(fft_size=512)

        assert analyser.frequency_bin_count == 256
        assert len(analyser.get_byte_frequency_data()) == 256

    def test_silence_gives_zero_bytes(self, audio_test_data):
        analyser = FrequencyAnalyser()
        analyser.write_pcm16(audio_test_data("silence", samples=1024))

        data = analyser.get_byte_frequency_data()
        assert data.dtype == np.uint8
        assert int(data.max()) == 0

    def test_loud_noise_fills_the_byte_range(self, audio_test_data):
        analyser = FrequencyAnalyser()
        chunk = audio_test_data("noise", samples=1024)
        for _ in range(10):
            analyser.write_pcm16(chunk)
            data = analyser.get_byte_frequency_data()

        assert data.mean() > 150

    def test_short_writes_shift_the_window(self):
        analyser = FrequencyAnalyser(fft_size=64)
        analyser.write_pcm16((np.ones(16, dtype='<i2') * 1000).tobytes())

        assert np.count_nonzero(analyser._samples) == 16
        assert analyser._samples[-1] == pytest.approx(1000 / 32768)

    def test_invalid_fft_size_rejected(self):
        with pytest.raises(AudioGraphError):
            FrequencyAnalyser(fft_size=500)

    def test_invalid_smoothing_rejected(self):
        with pytest.raises(AudioGraphError):
            FrequencyAnalyser(smoothing_time_constant=1.5)

    def test_closed_analyser_cannot_be_read(self):
        analyser = FrequencyAnalyser()
        analyser.close()

        with pytest.raises(AudioGraphError):
            analyser.get_byte_frequency_data()


@pytest.mark.unit
class TestComputeLevelDb:
    """Test cases for compute_level_db."""

    def test_all_zero_is_negative_infinity(self):
        assert compute_level_db(np.zeros(256, dtype=np.uint8)) == -math.inf

    def test_empty_is_negative_infinity(self):
        assert compute_level_db(np.array([], dtype=np.uint8)) == -math.inf

    def test_full_scale_is_zero_db(self):
        assert compute_level_db(np.full(256, 255, dtype=np.uint8)) == pytest.approx(0.0)

    def test_mean_is_used(self):
        data = np.array([0, 51], dtype=np.uint8)  # mean 25.5 = 255/10

        assert compute_level_db(data) == pytest.approx(-20.0)


@pytest.mark.unit
class TestAudioLevelSampler:
    """Test cases for AudioLevelSampler."""

    def _settings(self):
        return CaptureSettings(frame_interval_seconds=0.1)

    def test_samples_once_per_frame(self, scheduler, fakes):
        readings = []
        sampler = AudioLevelSampler(scheduler, self._settings(), lambda db, ts: readings.append((db, ts)))
        stream = fakes.Stream()

        sampler.start(stream)
        scheduler.advance(1.0)

        assert sampler.frames_sampled == 10
        assert len(readings) == 10
        assert readings[0][1] == pytest.approx(0.1)
        assert all(db == -math.inf for db, _ in readings)

    def test_levels_follow_stream_audio(self, scheduler, audio_test_data, fakes):
        readings = []
        sampler = AudioLevelSampler(scheduler, self._settings(), lambda db, ts: readings.append(db))
        stream = fakes.Stream()
        sampler.start(stream)

        scheduler.advance(0.1)
        stream.emit(audio_test_data("noise", samples=1024))
        scheduler.advance(0.1)

        assert readings[0] == -math.inf
        assert readings[1] > -35.0

    def test_no_frames_after_stop(self, scheduler, fakes):
        readings = []
        sampler = AudioLevelSampler(scheduler, self._settings(), lambda db, ts: readings.append(db))
        stream = fakes.Stream()
        sampler.start(stream)
        scheduler.advance(0.5)

        sampler.stop()
        count = len(readings)
        scheduler.advance(5.0)

        assert len(readings) == count
        assert scheduler.pending == []
        assert stream.listeners == []
        assert sampler.analyser is None

    def test_stop_releases_exactly_once(self, scheduler, fakes):
        sampler = AudioLevelSampler(scheduler, self._settings(), lambda db, ts: None)
        sampler.start(fakes.Stream())

        sampler.stop()
        sampler.stop()

        assert sampler.releases == 1
        assert sampler.is_running is False

    def test_restart_after_stop(self, scheduler, fakes):
        sampler = AudioLevelSampler(scheduler, self._settings(), lambda db, ts: None)
        stream = fakes.Stream()
        sampler.start(stream)
        sampler.stop()

        sampler.start(stream)
        scheduler.advance(0.3)

        assert sampler.is_running
        assert sampler.frames_sampled == 3
        assert len(stream.listeners) == 1

    def test_start_on_released_stream_fails(self, scheduler, fakes):
        sampler = AudioLevelSampler(scheduler, self._settings(), lambda db, ts: None)
        stream = fakes.Stream()
        stream.release()

        with pytest.raises(AudioGraphError):
            sampler.start(stream)
        assert sampler.is_running is False

    def test_consumer_failure_stops_and_reports(self, scheduler, fakes):
        errors = []

        def consumer(db, ts):
            raise ValueError("boom")

        sampler = AudioLevelSampler(scheduler, self._settings(), consumer, on_error=errors.append)
        stream = fakes.Stream()
        sampler.start(stream)
        scheduler.advance(1.0)

        assert len(errors) == 1
        assert isinstance(errors[0], AudioGraphError)
        assert sampler.is_running is False
        assert sampler.releases == 1
        assert stream.listeners == []

    def test_consumer_can_stop_sampler_mid_frame(self, scheduler, fakes):
        sampler = None

        def consumer(db, ts):
            sampler.stop()

        sampler = AudioLevelSampler(scheduler, self._settings(), consumer)
        sampler.start(fakes.Stream())
        scheduler.advance(1.0)

        assert sampler.frames_sampled == 1
        assert sampler.releases == 1
