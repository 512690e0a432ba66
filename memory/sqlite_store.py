"""SQLite-based long-term conversation history store."""

import sqlite3
import json
import logging
import re
from pathlib import Path
from datetime import datetime
from typing import Optional, List

from .models import Conversation, HistoryMessage

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
MAX_TITLE_LENGTH = 50

_TITLE_LEAD_INS = re.compile(
    r"^(hi|hello|hey|can you|please|help me|i need|i want|show me|find|search for|get|"
    r"tell me|what is|how do|when|where|who)\s+",
    re.IGNORECASE,
)


def generate_title_from_messages(messages: List[HistoryMessage]) -> str:
    """
    Derive a conversation title from the first user message.

    Args:
        messages: Conversation messages

    Returns:
        Title of at most MAX_TITLE_LENGTH characters
    """
    first_user = next((m for m in messages if m.role == "user"), None)
    if first_user is None:
        return DEFAULT_TITLE

    title = first_user.content.strip()
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH - 3] + "..."

    title = _TITLE_LEAD_INS.sub("", title)
    if title:
        title = title[0].upper() + title[1:]

    return title or DEFAULT_TITLE


class ConversationHistoryStore:
    """SQLite-backed durable conversation history, one row per (user, session)."""

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite history store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                user_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                messages TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, session_id)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id)"
        )

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    def save(
        self,
        user_id: str,
        session_id: str,
        messages: List[HistoryMessage],
        title: Optional[str] = None
    ) -> Conversation:
        """
        Insert or replace a conversation.

        Args:
            user_id: Owning user
            session_id: Conversation session ID
            messages: Full message list
            title: Optional title; generated from the first user message if omitted

        Returns:
            Saved Conversation
        """
        final_title = title or generate_title_from_messages(messages)
        now = datetime.now()
        messages_json = json.dumps([m.model_dump() for m in messages])

        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            """
            INSERT INTO conversations (user_id, session_id, title, messages, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, session_id) DO UPDATE SET
                title = excluded.title,
                messages = excluded.messages,
                created_at = excluded.created_at
            """,
            (user_id, session_id, final_title, messages_json, now.isoformat())
        )
        conn.commit()
        conn.close()

        return Conversation(
            user_id=user_id,
            session_id=session_id,
            title=final_title,
            messages=messages,
            created_at=now
        )

    def list(self, user_id: str) -> List[Conversation]:
        """
        List a user's conversations, newest first.

        Args:
            user_id: Owning user

        Returns:
            List of Conversation objects
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT * FROM conversations
            WHERE user_id = ?
            ORDER BY created_at DESC
            """,
            (user_id,)
        )
        rows = cursor.fetchall()
        conn.close()

        return [self._row_to_conversation(row) for row in rows]

    def get(self, user_id: str, session_id: str) -> Optional[Conversation]:
        """
        Get one conversation.

        Args:
            user_id: Owning user
            session_id: Conversation session ID

        Returns:
            Conversation or None if not found
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM conversations WHERE user_id = ? AND session_id = ?",
            (user_id, session_id)
        )
        row = cursor.fetchone()
        conn.close()

        return self._row_to_conversation(row) if row else None

    def delete(self, user_id: str, session_id: str) -> bool:
        """Delete a conversation. Returns True if a row was removed."""
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "DELETE FROM conversations WHERE user_id = ? AND session_id = ?",
            (user_id, session_id)
        )
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return deleted

    def update_title(self, user_id: str, session_id: str, title: str) -> bool:
        """Rename a conversation. Returns False if it does not exist."""
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE conversations SET title = ? WHERE user_id = ? AND session_id = ?",
            (title, user_id, session_id)
        )
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        messages = [HistoryMessage(**m) for m in json.loads(row["messages"] or "[]")]
        return Conversation(
            user_id=row["user_id"],
            session_id=row["session_id"],
            title=row["title"],
            messages=messages,
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else datetime.now()
        )
