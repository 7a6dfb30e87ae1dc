"""Lifecycle orchestrator: the companion's listening/processing state machine."""

import asyncio
import logging
from typing import Dict, Optional, Set

from pubsub import pub

from ..audio.level import AudioLevelSampler
from ..config import CaptureSettings, VadSettings
from ..errors import (
    APOLOGY_MESSAGE,
    ERROR_MESSAGES,
    TEXT_FALLBACK_ERRORS,
    AudioGraphError,
    ErrorKind,
    SplatterError,
)
from ..models.events import (
    CompanionEvent,
    CompanionEventType,
    LevelReading,
    VadDecision,
    VadDecisionType,
)
from ..models.session import AppPhase
from ..scheduling import Scheduler
from ..vad.classifier import VoiceActivityClassifier
from .caption_service import LiveCaptionEngine
from .conversation_log import ConversationLog
from .recording_service import RecordingSessionController

logger = logging.getLogger(__name__)

PHASE_TOPIC = "companion.phase"
TRANSCRIPT_TOPIC = "companion.transcript"
REPLY_TOPIC = "companion.reply"
ERROR_TOPIC = "companion.error"
LEVEL_TOPIC = "vad.level"

GREETING = ("Think back to yesterday... Can you tell me about one specific moment "
            "that stands out to you?")


class ConversationOrchestrator:
    """Ties the sampler, classifier, recorder and captions into one state machine.

    Every input (taps, voice decisions, transcripts, typed text, errors) is a
    CompanionEvent handled by dispatch(). Callbacks from the frame loop and
    from timers never act directly; they post events. Failures are turned
    into state transitions plus a user-visible message and never escape.
    """

    def __init__(self,
                 recorder: RecordingSessionController,
                 completion,
                 speech,
                 player,
                 scheduler: Scheduler,
                 capture_settings: CaptureSettings,
                 vad_settings: VadSettings,
                 captions: Optional[LiveCaptionEngine] = None,
                 local_voice=None,
                 conversation_log: Optional[ConversationLog] = None,
                 continue_mode: bool = False,
                 voice_supported: bool = True):
        """Initialize the orchestrator.

        Args:
            recorder: Owns the microphone and turns recordings into transcripts
            completion: Completion Service (``await complete(text) -> str``)
            speech: Speech Service (``await synthesize(text) -> SpeechAudio``);
                None speaks through ``local_voice`` only
            player: Plays synthesized audio (``await play(audio)``)
            scheduler: Clock and timers shared with the voice pipeline
            capture_settings: Analyser geometry and frame cadence
            vad_settings: Voice activity thresholds
            captions: Optional live caption engine, display only
            local_voice: Optional on-device synthesizer (``await speak(text)``)
            conversation_log: Optional history sink
            continue_mode: Go straight back to listening after a spoken reply
            voice_supported: False starts the companion in text entry
        """
        self.recorder = recorder
        self.completion = completion
        self.speech = speech
        self.player = player
        self.scheduler = scheduler
        self.captions = captions
        self.local_voice = local_voice
        self.conversation_log = conversation_log
        self.continue_mode = continue_mode
        self.voice_supported = voice_supported

        self.phase = AppPhase.IDLE if voice_supported else AppPhase.TEXT_FALLBACK
        self.vad_enabled = False
        self.last_error: Optional[ErrorKind] = None
        self.last_transcript = ""
        self.last_reply = ""

        self.classifier = VoiceActivityClassifier(
            vad_settings,
            scheduler,
            self._on_vad_decision,
            confirmed_length=captions.confirmed_length if captions else None,
        )
        self.sampler = AudioLevelSampler(scheduler, capture_settings,
                                         consumer=self._on_level,
                                         on_error=self._on_sampler_error)
        recorder.on_failure = self._on_device_failure

        self._tasks: Set[asyncio.Future] = set()
        self._starting = False
        self._closed = False
        self._handlers = {
            CompanionEventType.TAP: self._on_tap,
            CompanionEventType.VOICE_START: self._on_voice_start,
            CompanionEventType.VOICE_STOP: self._on_voice_stop,
            CompanionEventType.TRANSCRIPT_FINAL: self._on_transcript_final,
            CompanionEventType.TEXT_SUBMITTED: self._on_text_submitted,
            CompanionEventType.ERROR: self._on_error,
        }

    # Public entry points

    async def tap(self) -> None:
        await self.dispatch(CompanionEvent(CompanionEventType.TAP))

    async def submit_text(self, text: str) -> None:
        await self.dispatch(CompanionEvent(CompanionEventType.TEXT_SUBMITTED, text=text))

    def switch_to_text(self) -> None:
        """'Type instead': leave voice input until text is submitted or voice is chosen again."""
        if self.phase is AppPhase.IDLE:
            self.sampler.stop()
            self._set_phase(AppPhase.TEXT_FALLBACK)

    def switch_to_voice(self) -> None:
        if self.phase is AppPhase.TEXT_FALLBACK and self.voice_supported:
            self._set_phase(AppPhase.IDLE)
            self._resume_detection()

    async def enable_vad(self) -> bool:
        """Open the monitoring stream and start hands-free detection."""
        if self.vad_enabled:
            return True
        self.vad_enabled = True
        try:
            await self.recorder.open_session()
        except SplatterError as e:
            logger.error(f"Voice detection stream initialization failed: {e}")
            self.vad_enabled = False
            self._report(ErrorKind.VOICE_DETECTION_FAILED)
            return False

        if self.recorder.is_recording:
            self.recorder.retain_stream = True
            self._monitor_capture()
        else:
            self._resume_detection()
        logger.info("Voice detection enabled")
        return self.vad_enabled

    def disable_vad(self) -> None:
        """Return to tap-to-talk and release the monitoring stream when idle."""
        if not self.vad_enabled:
            return
        self.vad_enabled = False
        self.sampler.stop()
        self.classifier.reset()
        if self.captions is not None:
            self.captions.auto_restart = True
        if self.recorder.is_recording:
            self.recorder.retain_stream = False
        else:
            self.recorder.release()
        logger.info("Voice detection disabled")

    async def dispatch(self, event: CompanionEvent) -> None:
        """The single transition function."""
        if self._closed:
            logger.debug(f"Ignoring {event.type.value} after shutdown")
            return
        logger.debug(f"Event {event.type.value} in phase {self.phase.value}")
        await self._handlers[event.type](event)

    async def drain(self) -> None:
        """Wait until every background step (transcription, replies) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Release every resource; later events are ignored."""
        if self._closed:
            return
        self._closed = True
        self.sampler.stop()
        self.classifier.reset()
        if self.captions is not None:
            self.captions.stop()
        self.recorder.abort()
        self.recorder.release()

        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if self.conversation_log is not None:
            await self.conversation_log.close()
        logger.info("Orchestrator shut down")

    # Transitions

    async def _on_tap(self, event: CompanionEvent) -> None:
        if self.vad_enabled:
            logger.debug("Tap ignored: voice detection controls recording")
            return
        if self.phase is AppPhase.IDLE:
            await self._start_listening()
        elif self.phase is AppPhase.LISTENING:
            self._stop_listening()
        else:
            logger.debug(f"Tap ignored in phase {self.phase.value}")

    async def _on_voice_start(self, event: CompanionEvent) -> None:
        if not self.vad_enabled or self.phase is not AppPhase.IDLE:
            logger.debug(f"Voice start ignored in phase {self.phase.value}")
            return
        await self._start_listening()

    async def _on_voice_stop(self, event: CompanionEvent) -> None:
        if self.phase is not AppPhase.LISTENING or event.epoch != self.recorder.epoch:
            logger.info(f"Discarding stale voice stop (epoch {event.epoch}, "
                        f"current {self.recorder.epoch}, phase {self.phase.value})")
            return
        self._stop_listening()

    async def _on_transcript_final(self, event: CompanionEvent) -> None:
        if self.phase is not AppPhase.PROCESSING:
            logger.warning(f"Transcript arrived in phase {self.phase.value}; ignoring")
            return
        await self._respond(event.text)
        await self._finish_turn(from_voice=True)

    async def _on_text_submitted(self, event: CompanionEvent) -> None:
        text = event.text.strip()
        if not text:
            return
        if self.phase not in (AppPhase.TEXT_FALLBACK, AppPhase.IDLE):
            logger.debug(f"Text ignored in phase {self.phase.value}")
            return
        self.sampler.stop()
        self._set_phase(AppPhase.PROCESSING)
        await self._respond(text)
        await self._finish_turn(from_voice=False)

    async def _on_error(self, event: CompanionEvent) -> None:
        kind = event.error
        if kind is ErrorKind.CAPTION_UNSUPPORTED:
            logger.info("Live captions unavailable")
            return
        if kind is ErrorKind.VOICE_DETECTION_FAILED:
            self.disable_vad()
            self._report(kind)
            return

        self._report(kind)
        if kind in TEXT_FALLBACK_ERRORS:
            if self.phase is AppPhase.LISTENING:
                self._leave_listening()
                self.recorder.abort()
            if kind is not ErrorKind.TRANSCRIPTION_FAILED:
                self.disable_vad()
                self.recorder.release()
                if self.phase is AppPhase.PROCESSING:
                    # The clip already went out; its reply still arrives and ends the turn
                    return
            self._set_phase(AppPhase.TEXT_FALLBACK)

    # Steps

    async def _start_listening(self) -> None:
        if self._starting:
            return
        self._starting = True
        try:
            epoch = await self.recorder.start(retain_stream=self.vad_enabled)
        except SplatterError as e:
            logger.error(f"Recording error: {e}")
            await self.dispatch(CompanionEvent.failure(e.kind))
            return
        finally:
            self._starting = False

        if self._closed:
            self.recorder.abort()
            return

        self.classifier.capture_started(epoch)
        self._set_phase(AppPhase.LISTENING)
        if self.captions is not None:
            self.captions.auto_restart = not self.vad_enabled
            self.captions.start(self.recorder.session.stream)
        if self.vad_enabled:
            # Detection may have been switched on while the device was being acquired
            self.recorder.retain_stream = True
            self._monitor_capture()

    def _leave_listening(self) -> None:
        """Release the frame loop, the analyser and the captions, synchronously."""
        self.sampler.stop()
        self.classifier.capture_stopped()
        if self.captions is not None:
            self.captions.stop()

    def _stop_listening(self) -> None:
        self._leave_listening()
        epoch = self.recorder.epoch
        task = self.recorder.stop()
        self._set_phase(AppPhase.PROCESSING)
        if task is None:
            self._set_phase(AppPhase.IDLE)
            self._resume_detection()
            return
        self._spawn(self._await_transcription(task, epoch))

    async def _await_transcription(self, task: asyncio.Future, epoch: int) -> None:
        try:
            result = await task
        except asyncio.CancelledError:
            raise
        except SplatterError as e:
            logger.warning(f"Transcription error: {e}")
            await self.dispatch(CompanionEvent.failure(ErrorKind.TRANSCRIPTION_FAILED))
            return
        except Exception as e:
            logger.error(f"Unexpected transcription failure: {e}", exc_info=True)
            await self.dispatch(CompanionEvent.failure(ErrorKind.TRANSCRIPTION_FAILED))
            return

        await self.dispatch(CompanionEvent(CompanionEventType.TRANSCRIPT_FINAL,
                                           text=result.text, epoch=epoch))

    async def _respond(self, user_text: str) -> None:
        """One Completion call and one Speech attempt; never raises."""
        self.last_transcript = user_text
        pub.sendMessage(TRANSCRIPT_TOPIC, text=user_text)

        try:
            reply = await self.completion.complete(user_text)
        except Exception as e:
            logger.error(f"AI API error: {e}")
            self.last_error = ErrorKind.COMPLETION_FAILED
            reply = APOLOGY_MESSAGE

        self.last_reply = reply
        pub.sendMessage(REPLY_TOPIC, text=reply)

        if self.conversation_log is not None:
            try:
                await self.conversation_log.record(user_text, reply)
            except Exception as e:
                logger.error(f"Failed to record exchange: {e}")

        await self._speak(reply)

    async def _speak(self, text: str) -> bool:
        if self.speech is not None:
            try:
                audio = await self.speech.synthesize(text)
                await self.player.play(audio)
                return True
            except Exception as e:
                logger.warning(f"Speech error: {e}")
                self._report(ErrorKind.SPEECH_FAILED)

        if self.local_voice is None:
            logger.warning("No on-device voice; reply stays text-only")
            return False
        try:
            await self.local_voice.speak(text)
            return True
        except Exception as e:
            logger.error(f"On-device speech failed; reply stays text-only: {e}")
            return False

    async def _finish_turn(self, from_voice: bool) -> None:
        if self._closed:
            return
        if from_voice and self.continue_mode and not self.vad_enabled:
            self._set_phase(AppPhase.IDLE)
            await self._start_listening()
            return
        self._set_phase(AppPhase.IDLE)
        self._resume_detection()

    def _resume_detection(self) -> None:
        """Restart level sampling on the retained stream once the companion is idle again."""
        if not self.vad_enabled or self.phase is not AppPhase.IDLE or self.sampler.is_running:
            return
        session = self.recorder.session
        if session is None or session.is_released:
            logger.warning("Voice detection has no open stream; switching to manual mode")
            self.disable_vad()
            return

        self.classifier.reset()
        try:
            self.sampler.start(session.stream)
        except AudioGraphError as e:
            self._on_sampler_error(e)

    def _monitor_capture(self) -> None:
        """Sample the capture in progress so silence can end it once taps no longer do."""
        if self.phase is not AppPhase.LISTENING or self.sampler.is_running:
            return
        if not self.classifier.capture_active:
            self.classifier.capture_started(self.recorder.epoch)
        if self.captions is not None:
            self.captions.auto_restart = False
        try:
            self.sampler.start(self.recorder.session.stream)
        except AudioGraphError as e:
            self._on_sampler_error(e)

    # Callbacks from the frame loop and timers

    def _on_level(self, level_db: float, timestamp: float) -> None:
        self.classifier.process(level_db, timestamp)
        pub.sendMessage(LEVEL_TOPIC, reading=LevelReading(
            level_db=level_db,
            is_active=self.classifier.state.is_voice_active,
            timestamp=timestamp,
        ))

    def _on_vad_decision(self, decision: VadDecision) -> None:
        if decision.type is VadDecisionType.START:
            self._spawn(self.dispatch(CompanionEvent(CompanionEventType.VOICE_START)))
        else:
            self._spawn(self.dispatch(CompanionEvent(CompanionEventType.VOICE_STOP, epoch=decision.epoch)))

    def _on_sampler_error(self, error: AudioGraphError) -> None:
        logger.error(f"Voice activity detection error: {error}")
        self._spawn(self.dispatch(CompanionEvent.failure(ErrorKind.VOICE_DETECTION_FAILED)))

    def _on_device_failure(self, error: SplatterError) -> None:
        logger.error(f"Audio device error: {error}")
        self._spawn(self.dispatch(CompanionEvent.failure(error.kind)))

    # Helpers

    def _set_phase(self, phase: AppPhase) -> None:
        if phase is self.phase:
            return
        previous = self.phase
        self.phase = phase
        logger.info(f"Phase: {previous.value} -> {phase.value}")
        pub.sendMessage(PHASE_TOPIC, phase=phase, previous=previous)

    def _report(self, kind: ErrorKind) -> None:
        self.last_error = kind
        pub.sendMessage(ERROR_TOPIC, kind=kind, message=ERROR_MESSAGES[kind])

    def _spawn(self, coro) -> asyncio.Future:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background step failed: {task.exception()}", exc_info=task.exception())

    def status(self) -> Dict[str, object]:
        return {
            "phase": self.phase.value,
            "vad_enabled": self.vad_enabled,
            "recorder_state": self.recorder.recorder_state.value,
            "epoch": self.recorder.epoch,
            "captions": self.captions.display_text if self.captions else "",
            "last_error": self.last_error.value if self.last_error else None,
        }
