"""Conversation memory: sessions and message history per user.

A session is one continuous conversation. The latest session of a user is
reused while its last activity is inside the continuity window, otherwise a
new one is started. Images are never stored, only a text marker.

Writes are best-effort: a failed save is logged and the chat carries on.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from consultant.api.schemas import ChatMessage, MessageContent, MessageRecord, TextBlock
from consultant.core.database import ChatMessageRow, ChatSessionRow, utcnow

logger = structlog.get_logger(__name__)

IMAGE_PLACEHOLDER = "[Фото прикреплено]"


class MemoryStoreError(Exception):
    """Session could not be created or looked up."""


def extract_text_content(content: MessageContent) -> str:
    """Flatten message content to storable text.

    Text blocks are joined with a single space and image blocks become
    IMAGE_PLACEHOLDER.
    """
    if isinstance(content, str):
        return content

    parts = []
    for block in content:
        if isinstance(block, TextBlock):
            if block.text:
                parts.append(block.text)
        else:
            parts.append(IMAGE_PLACEHOLDER)
    return " ".join(parts)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChatMemoryStore:
    """Reads and writes chat sessions/messages through a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: sessionmaker,
        continuity_window: timedelta = timedelta(hours=24),
        title_length: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.continuity_window = continuity_window
        self.title_length = title_length
        self._clock = clock

    def get_or_create_session(self, user_id: str, equipment_id: str | None = None) -> str:
        """Return the user's active session id, creating one if the last expired.

        Args:
            user_id: Authenticated user id.
            equipment_id: Equipment the chat was opened from, stored on new sessions.

        Returns:
            Session id (uuid4 string).

        Raises:
            MemoryStoreError: If the lookup or insert fails.
        """
        now = self._clock()
        try:
            with self._session_factory() as db:
                last = (
                    db.query(ChatSessionRow)
                    .filter(ChatSessionRow.user_id == user_id)
                    .order_by(ChatSessionRow.updated_at.desc())
                    .first()
                )
                if last is not None and now - _as_utc(last.updated_at) < self.continuity_window:
                    return last.id

                session_row = ChatSessionRow(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    equipment_id=equipment_id,
                    created_at=now,
                    updated_at=now,
                )
                db.add(session_row)
                db.commit()
                logger.info("memory.session_created", user_id=user_id, session_id=session_row.id,
                            equipment_id=equipment_id)
                return session_row.id

        except SQLAlchemyError as e:
            logger.error("memory.session_failed", user_id=user_id, error=str(e))
            raise MemoryStoreError(f"Could not create chat session: {e}") from e

    def save_messages(
        self,
        session_id: str,
        user_id: str,
        user_message: ChatMessage,
        ai_response: str,
        tools_used: list[str] | None = None,
    ) -> bool:
        """Persist one user row and one assistant row for an exchange.

        Returns:
            True if stored, False if the write failed (already logged).
        """
        now = self._clock()
        rows = [
            ChatMessageRow(
                session_id=session_id,
                user_id=user_id,
                role="user",
                content=extract_text_content(user_message.content),
                tools_used=None,
                created_at=now,
            ),
            ChatMessageRow(
                session_id=session_id,
                user_id=user_id,
                role="assistant",
                content=ai_response,
                tools_used=list(tools_used) if tools_used else None,
                created_at=now,
            ),
        ]

        try:
            with self._session_factory() as db:
                db.add_all(rows)
                db.query(ChatSessionRow).filter(ChatSessionRow.id == session_id).update(
                    {ChatSessionRow.updated_at: now}
                )
                db.commit()
            logger.debug("memory.messages_saved", session_id=session_id, tools=tools_used or [])
            return True

        except SQLAlchemyError as e:
            logger.error("memory.save_failed", session_id=session_id, error=str(e))
            return False

    def load_recent_history(self, user_id: str, limit: int = 20) -> list[ChatMessage]:
        """Fetch the user's last `limit` messages, oldest first.

        Read failures are logged and yield an empty history.
        """
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(ChatMessageRow)
                    .filter(ChatMessageRow.user_id == user_id)
                    .order_by(ChatMessageRow.created_at.desc(), ChatMessageRow.id.desc())
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error("memory.load_failed", user_id=user_id, error=str(e))
            return []

        rows.reverse()
        return [ChatMessage(role=row.role, content=row.content) for row in rows if row.content.strip()]

    def update_session_title(self, session_id: str, first_message_text: str) -> bool:
        """Set the session title from the first user message if none is set yet.

        Returns:
            True if the title was written by this call.
        """
        text = first_message_text.strip()
        if not text:
            return False
        title = text[: self.title_length] + ("..." if len(text) > self.title_length else "")

        try:
            with self._session_factory() as db:
                updated = (
                    db.query(ChatSessionRow)
                    .filter(ChatSessionRow.id == session_id, ChatSessionRow.title.is_(None))
                    .update({ChatSessionRow.title: title}, synchronize_session=False)
                )
                db.commit()
            return bool(updated)

        except SQLAlchemyError as e:
            logger.error("memory.title_failed", session_id=session_id, error=str(e))
            return False

    def get_session_title(self, session_id: str) -> str | None:
        with self._session_factory() as db:
            row = db.get(ChatSessionRow, session_id)
            return row.title if row else None

    def get_latest_session_id(self, user_id: str) -> str | None:
        """Most recently active session of the user, regardless of age."""
        with self._session_factory() as db:
            row = (
                db.query(ChatSessionRow.id)
                .filter(ChatSessionRow.user_id == user_id)
                .order_by(ChatSessionRow.updated_at.desc())
                .first()
            )
            return row[0] if row else None

    def get_session_messages(self, session_id: str) -> list[MessageRecord]:
        """Full history of one session in chronological order."""
        with self._session_factory() as db:
            rows = (
                db.query(ChatMessageRow)
                .filter(ChatMessageRow.session_id == session_id)
                .order_by(ChatMessageRow.created_at.asc(), ChatMessageRow.id.asc())
                .all()
            )
            return [
                MessageRecord(
                    role=row.role,
                    content=row.content,
                    tools_used=row.tools_used,
                    timestamp=row.created_at,
                )
                for row in rows
            ]
