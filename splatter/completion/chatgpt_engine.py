"""ChatGPT completion engine: one empathetic follow-up question per utterance."""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..errors import CompletionFailedError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a warm, empathetic companion helping someone capture one meaningful "
    "moment from yesterday. Reply with a single open, curious follow-up question that "
    "builds on what they just said and invites more vivid detail. Keep it short enough "
    "to be spoken aloud."
)

FALLBACK_REPLY = "I'd love to hear more about that."


class ChatGPTCompletionEngine:
    """Single-turn chat completion: no conversation history is sent."""

    def __init__(self, api_key: str, model: str = "gpt-3.5-turbo",
                 system_prompt: Optional[str] = None, temperature: float = 0.7,
                 max_tokens: int = 400, timeout_seconds: float = 30.0):
        """Initialize ChatGPT completion engine.

        Args:
            api_key: OpenAI API key
            model: Chat model to use
            system_prompt: Instructions for the companion's tone
            temperature: Temperature for response generation (0.0 to 1.0)
            max_tokens: Maximum tokens in response
        """
        if not api_key:
            raise ValueError("OpenAI API key is required for completions")
        self.api_key = api_key
        self.model = model
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"ChatGPTCompletionEngine initialized with model: {model}")

    async def complete(self, user_text: str) -> str:
        """Send the user's words and return the companion's reply.

        Raises:
            CompletionFailedError: If the API call fails
        """
        if not user_text or not user_text.strip():
            raise CompletionFailedError("Message is required")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        data = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": user_text},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.base_url, headers=headers, json=data) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise CompletionFailedError(f"ChatGPT API error: {response.status} - {error_text}")

                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CompletionFailedError(f"ChatGPT API unreachable: {e}") from e

        try:
            content = result["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionFailedError(f"Unexpected ChatGPT response: {result}") from e

        reply = content.strip() or FALLBACK_REPLY
        logger.debug(f"Completion reply: '{reply}'")
        return reply
