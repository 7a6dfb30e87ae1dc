"""ElevenLabs text-to-speech engine."""

import asyncio
import logging

import aiohttp

from ..errors import SpeechFailedError
from ..models.audio import SpeechAudio

logger = logging.getLogger(__name__)


class ElevenLabsSpeechEngine:
    """Synthesizes replies as raw PCM so they can be played through PyAudio."""

    def __init__(self, api_key: str, voice_id: str = "EXAVITQu4vr4xnSDxMaL",
                 model_id: str = "eleven_monolingual_v1", sample_rate: int = 22050,
                 stability: float = 0.5, similarity_boost: float = 0.5,
                 timeout_seconds: float = 30.0):
        if not api_key:
            raise ValueError("ElevenLabs API key is required for speech synthesis")
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.sample_rate = sample_rate
        self.voice_settings = {"stability": stability, "similarity_boost": similarity_boost}
        self.base_url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"ElevenLabsSpeechEngine initialized with voice: {voice_id}")

    async def synthesize(self, text: str) -> SpeechAudio:
        """Turn ``text`` into playable audio.

        Raises:
            SpeechFailedError: If the API call fails
        """
        if not text:
            raise SpeechFailedError("Text is required")

        headers = {
            "Accept": "audio/pcm",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }
        data = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings,
        }
        params = {"output_format": f"pcm_{self.sample_rate}"}

        logger.info("Calling ElevenLabs TTS API...")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.base_url, headers=headers, json=data, params=params) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise SpeechFailedError(f"ElevenLabs API error: {response.status} - {error_text}")
                    pcm = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SpeechFailedError(f"ElevenLabs API unreachable: {e}") from e

        logger.info(f"ElevenLabs TTS successful: {len(pcm)} bytes")
        return SpeechAudio(pcm=pcm, sample_rate=self.sample_rate)
