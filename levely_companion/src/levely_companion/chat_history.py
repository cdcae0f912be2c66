"""
Chat History Store

Quick-ask sessions and messages persisted in Supabase (``chat_sessions`` and
``chat_messages`` tables), with an in-memory fallback when no client is
configured.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from levely_companion.errors import ChatHistoryError

logger = logging.getLogger(__name__)

TABLE_SESSIONS = "chat_sessions"
TABLE_MESSAGES = "chat_messages"
TITLE_MAX_CHARS = 120
PREVIEW_MAX_CHARS = 120

SESSION_COLUMNS = "id, user_id, device_id, title, last_message_preview, metadata, created_at, updated_at"
MESSAGE_COLUMNS = "id, session_id, role, content, created_at"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_role(role: Optional[str]) -> str:
    return "assistant" if role == "assistant" else "user"


def normalize_title(title: Any) -> Optional[str]:
    if not title:
        return None
    return str(title).strip()[:TITLE_MAX_CHARS] or None


def row_to_session(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "userId": row.get("user_id"),
        "deviceId": row.get("device_id"),
        "title": row.get("title"),
        "lastMessagePreview": row.get("last_message_preview"),
        "metadata": row.get("metadata") or {},
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def row_to_message(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "sessionId": row.get("session_id"),
        "role": row.get("role"),
        "content": row.get("content"),
        "createdAt": row.get("created_at"),
    }


class ChatHistoryStore:
    """
    Session and message persistence for quick-ask conversations.

    When ``resume_latest_session`` is set, ``ensure_session`` without a session
    id reuses the learner's most recently updated session instead of opening
    a new one.
    """

    def __init__(self, supabase_client=None, resume_latest_session: bool = False):
        """
        Args:
            supabase_client: Supabase client instance (optional)
            resume_latest_session: Reuse the latest session when none is given
        """
        self.supabase = supabase_client
        self.use_supabase = supabase_client is not None
        self.resume_latest_session = resume_latest_session

        # In-memory fallback, insertion order doubles as recency order
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._messages: Dict[str, List[Dict[str, Any]]] = {}

    # Sessions

    async def find_latest_session(self, user_id: Optional[str]) -> Optional[str]:
        if user_id is None:
            return None

        if not self.use_supabase:
            for row in reversed(list(self._sessions.values())):
                if row["user_id"] == user_id:
                    return row["id"]
            return None

        try:
            result = self.supabase.table(TABLE_SESSIONS) \
                .select("id") \
                .eq("user_id", user_id) \
                .order("updated_at", desc=True) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error finding latest session: {e}")
            return None
        return result.data[0].get("id") if result.data else None

    async def ensure_session(
        self,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> str:
        """
        Return an existing session id or create a session.

        Raises:
            ChatHistoryError: if a new session cannot be created
        """
        if session_id and await self._session_exists(session_id):
            return session_id

        if not session_id and self.resume_latest_session:
            latest = await self.find_latest_session(user_id)
            if latest:
                logger.info(f"🔁 [ChatHistoryStore] Resuming session {latest} for {user_id}")
                return latest

        row = await self._insert_session({
            "id": session_id,
            "user_id": user_id,
            "device_id": device_id,
        })
        return row["id"]

    async def create_session(
        self,
        user_id: Optional[str] = None,
        device_id: Optional[str] = None,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        row = await self._insert_session({
            "user_id": user_id,
            "device_id": device_id,
            "title": normalize_title(title),
            "metadata": metadata or {},
        })
        return row_to_session(row)

    async def list_sessions(self, user_id: Optional[str], limit: int = 20, offset: int = 0) -> List[Dict[str, Any]]:
        if user_id is None:
            return []

        if not self.use_supabase:
            rows = [row for row in reversed(list(self._sessions.values())) if row["user_id"] == user_id]
            return [row_to_session(row) for row in rows[offset:offset + limit]]

        try:
            result = self.supabase.table(TABLE_SESSIONS) \
                .select(SESSION_COLUMNS) \
                .eq("user_id", user_id) \
                .order("updated_at", desc=True) \
                .range(offset, offset + limit - 1) \
                .execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error listing sessions: {e}")
            return []
        return [row_to_session(row) for row in result.data or []]

    async def rename_session(self, session_id: str, title: Optional[str]) -> Dict[str, Any]:
        """
        Raises:
            ChatHistoryError: if the session id is missing or the update fails
        """
        if not session_id:
            raise ChatHistoryError("session_id is required")

        normalized = normalize_title(title)
        if not self.use_supabase:
            row = self._sessions.get(session_id)
            if row is None:
                raise ChatHistoryError(f"Session {session_id} not found")
            row["title"] = normalized
            row["updated_at"] = _now_iso()
            return row_to_session(row)

        try:
            result = self.supabase.table(TABLE_SESSIONS) \
                .update({"title": normalized}) \
                .eq("id", session_id) \
                .execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error renaming session {session_id}: {e}")
            raise ChatHistoryError("Failed to rename chat session") from e
        if not result.data:
            raise ChatHistoryError(f"Session {session_id} not found")
        return row_to_session(result.data[0])

    async def delete_session(self, session_id: Optional[str]) -> Dict[str, bool]:
        if not session_id:
            return {"deleted": False}

        if not self.use_supabase:
            deleted = self._sessions.pop(session_id, None) is not None
            self._messages.pop(session_id, None)
            return {"deleted": deleted}

        try:
            self.supabase.table(TABLE_SESSIONS).delete().eq("id", session_id).execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error deleting session {session_id}: {e}")
            raise ChatHistoryError("Failed to delete chat session") from e
        return {"deleted": True}

    # Messages

    async def fetch_messages(self, session_id: Optional[str], limit: int = 50) -> List[Dict[str, Any]]:
        """The latest ``limit`` messages of a session, oldest first."""
        if not session_id or limit <= 0:
            return []

        if not self.use_supabase:
            return [row_to_message(row) for row in self._messages.get(session_id, [])[-limit:]]

        try:
            result = self.supabase.table(TABLE_MESSAGES) \
                .select(MESSAGE_COLUMNS) \
                .eq("session_id", session_id) \
                .order("created_at", desc=True) \
                .limit(limit) \
                .execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error fetching messages: {e}")
            return []
        return [row_to_message(row) for row in reversed(result.data or [])]

    async def append_messages(self, session_id: Optional[str], messages: Iterable[Mapping[str, Any]]) -> int:
        """
        Store messages, dropping empty ones. Roles other than ``assistant`` become ``user``.

        Returns:
            Number of stored messages
        """
        if not session_id:
            return 0

        rows = []
        for message in messages:
            content = str(message.get("content") or "").strip()
            if not content:
                continue
            rows.append({
                "session_id": session_id,
                "role": sanitize_role(message.get("role")),
                "content": content,
                "metadata": message.get("metadata") or {},
            })
        if not rows:
            return 0

        if not self.use_supabase:
            now = _now_iso()
            stored = self._messages.setdefault(session_id, [])
            for row in rows:
                stored.append({"id": str(uuid.uuid4()), "created_at": now, **row})
            session = self._sessions.pop(session_id, None)
            if session is not None:
                session["last_message_preview"] = rows[-1]["content"][:PREVIEW_MAX_CHARS]
                session["updated_at"] = now
                self._sessions[session_id] = session
            return len(rows)

        try:
            self.supabase.table(TABLE_MESSAGES).insert(rows).execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error appending messages to {session_id}: {e}")
            return 0
        return len(rows)

    # Internals

    async def _session_exists(self, session_id: str) -> bool:
        if not self.use_supabase:
            return session_id in self._sessions
        try:
            result = self.supabase.table(TABLE_SESSIONS).select("id").eq("id", session_id).limit(1).execute()
        except Exception as e:
            logger.warning(f"⚠️ [ChatHistoryStore] Session lookup failed for {session_id}: {e}")
            return False
        return bool(result.data)

    async def _insert_session(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if payload.get("id") is None:
            payload.pop("id", None)

        if not self.use_supabase:
            now = _now_iso()
            row = {
                "id": payload.get("id") or str(uuid.uuid4()),
                "user_id": payload.get("user_id"),
                "device_id": payload.get("device_id"),
                "title": payload.get("title"),
                "last_message_preview": None,
                "metadata": payload.get("metadata") or {},
                "created_at": now,
                "updated_at": now,
            }
            self._sessions[row["id"]] = row
            self._messages.setdefault(row["id"], [])
            return row

        try:
            result = self.supabase.table(TABLE_SESSIONS).insert(payload).execute()
        except Exception as e:
            logger.error(f"❌ [ChatHistoryStore] Error creating session: {e}")
            raise ChatHistoryError("Failed to create chat session") from e
        if not result.data:
            raise ChatHistoryError("Failed to create chat session")
        logger.info(f"✅ [ChatHistoryStore] Created session {result.data[0].get('id')}")
        return result.data[0]
