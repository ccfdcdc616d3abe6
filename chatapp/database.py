from contextlib import contextmanager
from typing import List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine, select, delete, col

from chatapp.models import ChatSession, Message, MESSAGE_ROLES

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the chat store cannot complete an operation."""


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Trim a session name; blank names are stored as NULL."""
    if name is None:
        return None
    name = name.strip()
    return name or None


class ChatStore:
    """SQLModel-backed store for chat sessions and their messages.

    The store owns its engine: open() at process start, close() at shutdown.
    Every accessor uses its own short-lived Session.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine = None

    def open(self) -> "ChatStore":
        if self.engine is not None:
            return self
        connect_args = {"check_same_thread": False} if self.database_url.startswith("sqlite") else {}
        try:
            self.engine = create_engine(self.database_url, echo=self.echo, connect_args=connect_args)
            SQLModel.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Could not open chat store at {self.database_url}: {e}")
            self.engine = None
            raise StoreError("Could not open chat store") from e
        logger.info(f"Chat store ready: {self.database_url}")
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            logger.info("Chat store closed")

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    @contextmanager
    def _session(self):
        if self.engine is None:
            raise StoreError("Chat store is not open")
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Chat store error: {e}")
            raise StoreError(str(e)) from e

    def create_session(self, name: Optional[str] = None) -> ChatSession:
        with self._session() as session:
            chat = ChatSession(name=normalize_name(name))
            session.add(chat)
            session.commit()
            session.refresh(chat)
            return chat

    def list_sessions(self) -> List[ChatSession]:
        """All sessions, newest first."""
        with self._session() as session:
            return list(session.exec(
                select(ChatSession).order_by(col(ChatSession.created_at).desc(), col(ChatSession.id).desc())
            ).all())

    def get_session(self, session_id: int) -> Optional[ChatSession]:
        with self._session() as session:
            return session.get(ChatSession, session_id)

    def delete_session(self, session_id: int) -> None:
        """Remove a session and its messages. Unknown ids are a no-op."""
        with self._session() as session:
            session.execute(delete(Message).where(col(Message.session_id) == session_id))
            session.execute(delete(ChatSession).where(col(ChatSession.id) == session_id))
            session.commit()

    def insert_message(self, session_id: int, role: str, content: str) -> int:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role: {role!r}")
        with self._session() as session:
            message = Message(session_id=session_id, role=role, content=content)
            session.add(message)
            session.commit()
            session.refresh(message)
            return message.id

    def list_messages(self, session_id: int) -> List[Message]:
        """Messages of one session in ascending id order."""
        with self._session() as session:
            return list(session.exec(
                select(Message).where(Message.session_id == session_id).order_by(col(Message.id))
            ).all())
