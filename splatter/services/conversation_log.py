"""Conversation history for the current run, mirrored to the session store."""

import logging
from typing import List, Optional

from ..models.session import ConversationMessage
from ..storage.device_identity import DeviceIdentity
from ..storage.session_store import SupabaseSessionStore

logger = logging.getLogger(__name__)


class ConversationLog:
    """Collects exchanges and persists them without ever blocking the conversation.

    The remote session is created lazily on the first exchange worth keeping,
    so runs where nothing was said leave no empty rows behind.
    """

    def __init__(self, store: Optional[SupabaseSessionStore], identity: DeviceIdentity):
        self.store = store
        self.identity = identity
        self.messages: List[ConversationMessage] = []
        self.session_id: Optional[str] = None

    async def record(self, user_message: str, ai_response: str) -> ConversationMessage:
        """Add one exchange. Exchanges with no user text are returned but not kept."""
        message = ConversationMessage(user_message=user_message.strip(), ai_response=ai_response)
        if not message.user_message or not ai_response.strip():
            logger.debug("Skipping persistence of exchange without user text")
            return message

        self.messages.append(message)
        if self.store is None:
            return message

        session_id = await self._ensure_session()
        if session_id is None:
            logger.warning("No conversation session; exchange kept in memory only")
            return message

        if not await self.store.update_session(session_id, self.messages):
            logger.warning(f"Exchange not saved to session {session_id}; kept in memory only")
        return message

    async def _ensure_session(self) -> Optional[str]:
        if self.session_id is None:
            self.session_id = await self.store.create_session(self.identity.get_or_create())
        return self.session_id

    async def close(self) -> None:
        """Mark the remote session as ended."""
        if self.store is not None and self.session_id is not None:
            await self.store.end_session(self.session_id)
