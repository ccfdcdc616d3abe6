from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from typing import Optional

MESSAGE_ROLES = ("user", "assistant")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    # no ON DELETE CASCADE, ChatStore.delete_session removes messages itself
    session_id: int = Field(foreign_key="sessions.id", index=True)
    role: str  # "user" or "assistant"
    content: str
    created_at: datetime = Field(default_factory=utcnow)
