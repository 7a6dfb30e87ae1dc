"""Google Speech-to-Text streaming backend for live captions."""

import asyncio
import logging
import queue
import threading
from typing import Iterator, Optional

from .base import AbstractCaptionBackend, CaptionStream, CaptionResultCallback, CaptionEndCallback
from ..errors import CaptionUnsupportedError

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)


class GoogleStreamingCaptionBackend(AbstractCaptionBackend):
    """Google Speech-to-Text streaming recognition with interim results."""

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 44100,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True):
        """Initialize Google streaming backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            sample_rate: Sample rate of the microphone stream in Hz
            language: Language code (e.g., 'en-US', 'es-ES')
            enable_automatic_punctuation: Enable automatic punctuation
        """
        self.credentials_path = credentials_path
        self.language = language
        self.client = None
        self.service_name = "Google Speech-to-Text (streaming)"
        self.streaming_config = speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=sample_rate,
                language_code=language,
                enable_automatic_punctuation=enable_automatic_punctuation,
            ),
            interim_results=True,
        )

    def initialize(self) -> bool:
        """Create the Speech client; without credentials captions are unsupported."""
        if not self.credentials_path:
            logger.warning("No Google credentials configured; live captions disabled")
            return False

        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        self.client = speech.SpeechClient(credentials=credentials)
        logger.info(f"Using Google Cloud project: {credentials.project_id}")
        return True

    def open_stream(self, on_result: CaptionResultCallback, on_end: CaptionEndCallback) -> CaptionStream:
        if self.client is None:
            raise CaptionUnsupportedError("Google Speech client not initialized")
        stream = GoogleCaptionStream(self.client, self.streaming_config,
                                     asyncio.get_running_loop(), on_result, on_end)
        stream.start()
        return stream


class GoogleCaptionStream(CaptionStream):
    """A streaming_recognize call driven from a worker thread."""

    def __init__(self, client, streaming_config, loop: asyncio.AbstractEventLoop,
                 on_result: CaptionResultCallback, on_end: CaptionEndCallback):
        self.client = client
        self.streaming_config = streaming_config
        self.loop = loop
        self.on_result = on_result
        self.on_end = on_end
        self.audio_queue: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self.closed = threading.Event()
        self.thread = threading.Thread(target=self._run, daemon=True, name="CaptionStreamThread")

    def start(self) -> None:
        self.thread.start()

    def feed(self, audio_chunk: bytes) -> None:
        if not self.closed.is_set():
            self.audio_queue.put(audio_chunk)

    def close(self) -> None:
        if self.closed.is_set():
            return
        self.closed.set()
        self.audio_queue.put(None)

    def _requests(self) -> Iterator[speech.StreamingRecognizeRequest]:
        while True:
            chunk = self.audio_queue.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _run(self) -> None:
        error: Optional[Exception] = None
        try:
            responses = self.client.streaming_recognize(config=self.streaming_config,
                                                        requests=self._requests())
            for response in responses:
                interim = []
                for result in response.results:
                    if not result.alternatives:
                        continue
                    text = result.alternatives[0].transcript
                    if result.is_final:
                        self._post(self.on_result, text, True)
                    else:
                        interim.append(text)
                if interim:
                    self._post(self.on_result, "".join(interim), False)
        except gax_exceptions.GoogleAPICallError as e:
            logger.warning(f"Caption stream ended with API error: {e}")
            error = e
        except Exception as e:
            logger.error(f"Caption stream failed: {e}", exc_info=True)
            error = e
        finally:
            self._post(self.on_end, error)

    def _post(self, callback, *args) -> None:
        try:
            self.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Event loop already closed
            pass
