import logging
from datetime import datetime
from typing import List

from .database import Database
from .models import Message

logger = logging.getLogger(__name__)


class MessageLog:
    """Append-only public chat history"""

    def __init__(self, db: Database):
        self.db = db

    def append(self, username: str, body: str) -> None:
        # Author is taken as given; it is not checked against the users table
        with self.db.get_db() as conn:
            conn.execute("INSERT INTO messages (username, message) VALUES (?, ?)", (username, body))
        logger.info(f"Message sent by {username}")

    def list_all(self) -> List[Message]:
        """Every message, newest first"""
        with self.db.get_db() as conn:
            rows = conn.execute("""
                SELECT username, message, created_at
                FROM messages
                ORDER BY created_at DESC, id DESC
            """).fetchall()
        return [
            Message(username=row["username"], body=row["message"], created_at=_parse_timestamp(row["created_at"]))
            for row in rows
        ]


def _parse_timestamp(value) -> datetime:
    # CURRENT_TIMESTAMP is stored as 'YYYY-MM-DD HH:MM:SS' text
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
