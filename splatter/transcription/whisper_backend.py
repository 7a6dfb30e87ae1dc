"""OpenAI Whisper transcription backend."""

import asyncio
import time
import logging

import aiohttp

from .base import AbstractTranscriptionBackend
from ..errors import TranscriptionFailedError
from ..models.audio import AudioClip
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class WhisperTranscriptionBackend(AbstractTranscriptionBackend):
    """Sends finished clips to the OpenAI audio transcription endpoint."""

    def __init__(self, api_key: str, model: str = "whisper-1", language: str = "en",
                 temperature: float = 0.2, timeout_seconds: float = 30.0,
                 base_url: str = "https://api.openai.com/v1/audio/transcriptions"):
        """Initialize Whisper backend.

        Args:
            api_key: OpenAI API key
            model: Transcription model name
            language: ISO language hint
            temperature: Sampling temperature; low values give more consistent text
            timeout_seconds: Total request timeout
        """
        super().__init__(language)
        if not api_key:
            raise ValueError("OpenAI API key is required for transcription")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.service_name = "OpenAI Whisper"

        logger.info(f"WhisperTranscriptionBackend initialized with model: {model}")

    async def transcribe(self, clip: AudioClip) -> TranscriptionResult:
        if clip.is_empty:
            raise TranscriptionFailedError("Recorded clip is empty")

        start_time = time.time()
        logger.info(f"Transcribing clip: {len(clip.data)} bytes, {clip.duration_seconds:.2f}s")

        form = aiohttp.FormData()
        form.add_field("file", clip.data, filename=clip.filename, content_type=clip.content_type)
        form.add_field("model", self.model)
        form.add_field("language", self.language)
        form.add_field("response_format", "json")
        form.add_field("temperature", str(self.temperature))

        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.base_url, headers=headers, data=form) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise TranscriptionFailedError(
                            f"Whisper API error: {response.status} - {_describe_failure(response.status, error_text)}")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TranscriptionFailedError(f"Whisper API unreachable: {e}") from e

        text = (result.get("text") or "").strip()
        processing_time = time.time() - start_time
        if not text:
            raise TranscriptionFailedError("No speech recognised in clip")

        logger.info(f"Transcription succeeded in {processing_time:.2f}s: '{text}'")
        return TranscriptionResult(
            text=text,
            processing_time=processing_time,
            service=self.service_name,
            language=self.language,
            audio_duration_seconds=clip.duration_seconds,
        )


def _describe_failure(status: int, body: str) -> str:
    lowered = body.lower()
    if status == 401 or "api key" in lowered:
        return "Invalid OpenAI API key"
    if "quota" in lowered:
        return "OpenAI API quota exceeded"
    if status == 429 or "rate limit" in lowered:
        return "Rate limit exceeded, please try again later"
    return body
