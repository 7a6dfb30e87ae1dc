"""Unit tests for LiveCaptionEngine."""

import pytest

from splatter.config import CaptionSettings
from splatter.errors import CaptionUnsupportedError
from splatter.services.caption_service import LiveCaptionEngine


@pytest.mark.unit
class TestLiveCaptionEngine:
    """Test cases for LiveCaptionEngine."""

    def test_feeds_stream_audio_to_recognizer(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        stream = fakes.Stream()

        assert engine.start(stream) is True
        stream.emit(b'\x00\x01' * 8)

        assert engine.is_active
        assert backend.opened[0].fed == [b'\x00\x01' * 8]

    def test_final_and_interim_accumulators(self, fakes, scheduler, topics):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        engine.start(fakes.Stream())

        backend.on_result("I went ", False)
        assert engine.interim_transcript == "I went "
        assert engine.final_transcript == ""

        backend.on_result("I went for a walk. ", True)
        backend.on_result("It was", False)

        assert engine.final_transcript == "I went for a walk. "
        assert engine.interim_transcript == "It was"
        assert engine.display_text == "I went for a walk. It was"
        assert engine.confirmed_length() == len("I went for a walk.")
        assert [e.is_final for e in topics.captions] == [False, True, False]
        assert topics.captions[-1].display_text == "I went for a walk. It was"

    def test_stop_clears_and_closes(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        stream = fakes.Stream()
        engine.start(stream)
        backend.on_result("hello there", True)

        engine.stop()

        assert engine.is_active is False
        assert engine.final_transcript == ""
        assert engine.confirmed_length() == 0
        assert backend.opened[0].closed
        assert stream.listeners == []

    def test_results_after_stop_are_ignored(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        engine.start(fakes.Stream())
        late_result = backend.on_result
        engine.stop()

        late_result("too late", True)

        assert engine.final_transcript == ""

    def test_restarts_immediately_then_throttles(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler, CaptionSettings(min_restart_interval_seconds=1.0))
        engine.start(fakes.Stream())

        backend.on_end(None)
        assert engine.restarts == 1
        assert len(backend.opened) == 2

        # Ends again right away: the restart waits out the interval
        backend.on_end(None)
        assert engine.restarts == 1
        assert len(backend.opened) == 2

        scheduler.advance(1.0)
        assert engine.restarts == 2
        assert len(backend.opened) == 3

    def test_accumulators_survive_restart(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        engine.start(fakes.Stream())
        backend.on_result("first part. ", True)

        backend.on_end(RuntimeError("network hiccup"))
        backend.on_result("second part.", True)

        assert engine.final_transcript == "first part. second part."

    def test_stop_during_pending_restart_silences_engine(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        engine.start(fakes.Stream())
        backend.on_end(None)
        backend.on_end(None)  # delayed restart now pending

        engine.stop()
        scheduler.advance(5.0)

        assert len(backend.opened) == 2
        assert engine.is_active is False

    def test_no_restart_when_disabled(self, fakes, scheduler):
        backend = fakes.CaptionBackend()
        engine = LiveCaptionEngine(backend, scheduler)
        engine.auto_restart = False
        engine.start(fakes.Stream())

        backend.on_end(None)
        scheduler.advance(5.0)

        assert engine.restarts == 0
        assert len(backend.opened) == 1

    def test_unsupported_backend_degrades_silently(self, fakes, scheduler):
        backend = fakes.CaptionBackend(error=CaptionUnsupportedError("no recognizer"))
        engine = LiveCaptionEngine(backend, scheduler)

        assert engine.start(fakes.Stream()) is False
        assert engine.is_supported is False
        assert engine.is_active is False
        assert engine.confirmed_length() == 0

    def test_no_backend(self, fakes, scheduler):
        engine = LiveCaptionEngine(None, scheduler)

        assert engine.is_supported is False
        assert engine.start(fakes.Stream()) is False

    def test_disabled_in_settings(self, fakes, scheduler):
        engine = LiveCaptionEngine(fakes.CaptionBackend(), scheduler, CaptionSettings(enabled=False))

        assert engine.start(fakes.Stream()) is False
