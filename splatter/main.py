"""Main application entry point for Splatter."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional, Set

from .audio.capture import MicrophoneDevice
from .completion.chatgpt_engine import ChatGPTCompletionEngine
from .config import SplatterConfig
from .services.caption_service import LiveCaptionEngine
from .services.conversation_log import ConversationLog
from .services.orchestrator import GREETING, ConversationOrchestrator
from .services.recording_service import RecordingSessionController
from .scheduling import LoopScheduler
from .speech.elevenlabs_engine import ElevenLabsSpeechEngine
from .speech.playback import AudioPlayer, LocalSpeechSynthesizer
from .storage.device_identity import DeviceIdentity
from .storage.session_store import SupabaseSessionStore
from .transcription.whisper_backend import WhisperTranscriptionBackend
from .ui.console import Command, ConsoleDisplay, LineInputHandler

logger = logging.getLogger(__name__)


class SplatterApp:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = SplatterConfig(config_path)
        # Set up logging (override config with command line if specified)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)

        self.display = ConsoleDisplay(show_levels=self.config.get('ui.show_levels', False))
        self.identity = DeviceIdentity(self.config.get_data_directory())
        self.store = self._build_store()
        self.orchestrator: Optional[ConversationOrchestrator] = None
        self.should_exit: Optional[asyncio.Event] = None
        self._command_tasks: Set[asyncio.Future] = set()

    def _build_store(self) -> Optional[SupabaseSessionStore]:
        url = self.config.get_secret('supabase.url')
        anon_key = self.config.get_secret('supabase.anon_key')
        if not url or not anon_key:
            logger.warning("Supabase not configured; conversations will not be saved")
            return None
        return SupabaseSessionStore(url, anon_key, table=self.config.get('supabase.table', 'conversation_sessions'))

    def init(self, continue_mode: bool = False, text_only: bool = False) -> ConversationOrchestrator:
        """Wire the real components into an orchestrator."""
        logger.info("Initializing services...")

        openai_key = self.config.get_secret('openai.api_key')
        if not openai_key:
            raise ValueError("OpenAI API key not found. Set OPENAI_API_KEY or openai.api_key")

        capture_settings = self.config.capture_settings()
        vad_settings = self.config.vad_settings()
        caption_settings = self.config.caption_settings()
        scheduler = LoopScheduler()

        logger.info(f"Audio settings: {capture_settings.sample_rate}Hz, "
                    f"{capture_settings.chunk_size} samples/chunk, {capture_settings.channels} channels")

        transcriber = WhisperTranscriptionBackend(
            openai_key,
            model=self.config.get('openai.transcription_model', 'whisper-1'),
        )
        completion = ChatGPTCompletionEngine(
            openai_key,
            model=self.config.get('openai.chat_model', 'gpt-3.5-turbo'),
            system_prompt=self.config.get('openai.system_prompt'),
        )

        speech = None
        elevenlabs_key = self.config.get_secret('elevenlabs.api_key')
        if elevenlabs_key:
            speech = ElevenLabsSpeechEngine(
                elevenlabs_key,
                voice_id=self.config.get('elevenlabs.voice_id', 'EXAVITQu4vr4xnSDxMaL'),
            )
        else:
            logger.warning("ElevenLabs not configured; using on-device voice")

        recorder = RecordingSessionController(MicrophoneDevice(capture_settings), transcriber, capture_settings)
        captions = LiveCaptionEngine(self._build_caption_backend(capture_settings, caption_settings),
                                     scheduler, caption_settings)

        self.orchestrator = ConversationOrchestrator(
            recorder=recorder,
            completion=completion,
            speech=speech,
            player=AudioPlayer(capture_settings.chunk_size),
            scheduler=scheduler,
            capture_settings=capture_settings,
            vad_settings=vad_settings,
            captions=captions,
            local_voice=LocalSpeechSynthesizer(),
            conversation_log=ConversationLog(self.store, self.identity),
            continue_mode=continue_mode,
            voice_supported=not text_only,
        )
        return self.orchestrator

    def _build_caption_backend(self, capture_settings, caption_settings):
        if not caption_settings.enabled:
            return None
        try:
            credentials_path = self.config.get_google_credentials_path()
        except FileNotFoundError as e:
            logger.warning(f"{e}; live captions disabled")
            return None
        if not credentials_path:
            return None

        # Deferred: loads the Google client libraries
        from .transcription.google_backend import GoogleStreamingCaptionBackend
        backend = GoogleStreamingCaptionBackend(
            credentials_path=credentials_path,
            sample_rate=capture_settings.sample_rate,
            language=caption_settings.language,
        )
        try:
            if not backend.initialize():
                return None
        except Exception as e:
            logger.error(f"Failed to initialize Google Speech client: {e}")
            return None
        return backend

    async def run(self, vad: bool = False) -> None:
        orchestrator = self.orchestrator
        self.should_exit = asyncio.Event()
        self.display.subscribe()
        self.display.show_banner(GREETING, vad)

        if vad:
            await orchestrator.enable_vad()

        input_handler = LineInputHandler(asyncio.get_running_loop(), self._on_command)
        input_handler.start()
        try:
            await self.should_exit.wait()
        finally:
            input_handler.stop()
            await self.cleanup()

    def _on_command(self, command: Command) -> None:
        """Runs on the loop thread for every line the user enters."""
        if command.name == "quit":
            self.should_exit.set()
            return
        task = asyncio.ensure_future(self._handle(command))
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)

    async def _handle(self, command: Command) -> None:
        orchestrator = self.orchestrator
        try:
            if command.name == "tap":
                await orchestrator.tap()
            elif command.name == "text":
                await orchestrator.submit_text(command.text)
            elif command.name == "toggle_vad":
                if orchestrator.vad_enabled:
                    orchestrator.disable_vad()
                else:
                    await orchestrator.enable_vad()
            elif command.name == "type_instead":
                orchestrator.switch_to_text()
            elif command.name == "use_voice":
                orchestrator.switch_to_voice()
        except Exception as e:
            logger.error(f"Error handling command '{command.name}': {e}", exc_info=True)

    async def cleanup(self) -> None:
        for task in list(self._command_tasks):
            task.cancel()
        await asyncio.gather(*list(self._command_tasks), return_exceptions=True)
        if self.orchestrator is not None:
            await self.orchestrator.shutdown()
        self.display.unsubscribe()

    async def show_history(self) -> None:
        if self.store is None:
            self.display.console.print("Conversation history needs Supabase settings.", style="yellow")
            return
        sessions = await self.store.list_sessions(self.identity.get_or_create())
        self.display.show_history(sessions)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'data/logs/splatter.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Splatter starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


async def _run(args) -> None:
    app = SplatterApp(args.config, args.log_level)
    if args.history:
        await app.show_history()
        return

    continue_mode = args.continue_mode or app.config.get('companion.continue_mode', False)
    vad = args.vad or app.config.get('companion.vad_enabled', False)
    app.init(continue_mode=continue_mode, text_only=args.text)
    await app.run(vad=vad)


def main() -> None:
    """Main entry point for the Splatter companion."""
    parser = argparse.ArgumentParser(
        description="Splatter - voice-first daily reflection companion",
        epilog="Commands: Enter=tap to talk, t <text>=type, v=toggle voice detection, "
               "k=type instead, m=use voice, q=quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for splatter.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--vad",
        action="store_true",
        help="Start with hands-free voice activity detection enabled"
    )

    parser.add_argument(
        "--continue",
        dest="continue_mode",
        action="store_true",
        help="In tap-to-talk mode, start listening again after each reply"
    )

    parser.add_argument(
        "--text",
        action="store_true",
        help="Start in text entry instead of voice"
    )

    parser.add_argument(
        "--history",
        action="store_true",
        help="Show past conversations for this device and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Splatter v0.1.0"
    )

    args = parser.parse_args()

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
