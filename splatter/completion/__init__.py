"""Completion service for follow-up questions."""

from .chatgpt_engine import ChatGPTCompletionEngine, FALLBACK_REPLY

__all__ = ["ChatGPTCompletionEngine", "FALLBACK_REPLY"]
