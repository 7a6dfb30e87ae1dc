"""Conversation persistence against a hosted Supabase (PostgREST) table."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ..models.session import ConversationMessage, ConversationSession

logger = logging.getLogger(__name__)


class SupabaseSessionStore:
    """Creates, updates and lists conversation sessions.

    Every call logs and swallows its own failures: a session that cannot be
    stored must never interrupt the conversation.
    """

    def __init__(self, url: str, anon_key: str, table: str = "conversation_sessions",
                 timeout_seconds: float = 10.0):
        if not url or not anon_key:
            raise ValueError("Supabase URL and anon key are required")
        self.base_url = f"{url.rstrip('/')}/rest/v1/{table}"
        self.headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {anon_key}",
            "Content-Type": "application/json",
        }
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def create_session(self, device_id: str) -> Optional[str]:
        """Insert an empty conversation row and return its session id, or None."""
        try:
            rows = await self._request(
                "POST", params={"select": "session_id"},
                json=[{"device_id": device_id, "conversation": []}],
                extra_headers={"Prefer": "return=representation"},
            )
            session_id = rows[0]["session_id"]
            logger.info(f"Created conversation session {session_id} for {device_id}")
            return session_id
        except Exception as e:
            logger.error(f"Error creating conversation session: {e}")
            return None

    async def update_session(self, session_id: str, conversation: List[ConversationMessage]) -> bool:
        """Replace the stored conversation with ``conversation``."""
        try:
            await self._request(
                "PATCH", params={"session_id": f"eq.{session_id}"},
                json={"conversation": [m.to_row() for m in conversation], "updated_at": _now_iso()},
            )
            logger.debug(f"Saved {len(conversation)} messages to session {session_id}")
            return True
        except Exception as e:
            logger.error(f"Error updating conversation session: {e}")
            return False

    async def end_session(self, session_id: str) -> bool:
        try:
            await self._request("PATCH", params={"session_id": f"eq.{session_id}"},
                                json={"ended_at": _now_iso()})
            logger.info(f"Ended conversation session {session_id}")
            return True
        except Exception as e:
            logger.error(f"Error ending conversation session: {e}")
            return False

    async def list_sessions(self, device_id: str) -> List[ConversationSession]:
        """Sessions for this device, newest first."""
        try:
            rows = await self._request("GET", params={
                "select": "*",
                "device_id": f"eq.{device_id}",
                "order": "started_at.desc",
            })
        except Exception as e:
            logger.error(f"Error fetching conversation sessions: {e}")
            return []

        return [
            ConversationSession(
                session_id=row["session_id"],
                device_id=row.get("device_id", device_id),
                started_at=row.get("started_at"),
                ended_at=row.get("ended_at"),
                conversation=[ConversationMessage.from_row(m) for m in row.get("conversation") or []],
            )
            for row in rows or []
        ]

    async def _request(self, method: str, params: Dict[str, str], json: Any = None,
                       extra_headers: Optional[Dict[str, str]] = None) -> Any:
        headers = dict(self.headers)
        if extra_headers:
            headers.update(extra_headers)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(method, self.base_url, params=params, json=json,
                                       headers=headers) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    raise RuntimeError(f"Supabase error: {response.status} - {error_text}")
                if response.status == 204:
                    return None
                return await response.json(content_type=None)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
