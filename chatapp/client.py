from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

CODE_FENCE = "```"
SEND_ERROR_TEXT = "Error talking to server 😢"


class ChatApiClient:
    """Thin httpx wrapper around the chat HTTP API.

    Any transport or non-2xx response surfaces as ``httpx.HTTPError``.
    """

    def __init__(self, base_url: str = "http://localhost:5000", timeout: float = 120.0,
                 http: Optional[httpx.Client] = None):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self.http.close()

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise httpx.DecodingError(f"Invalid JSON from {response.request.url}", request=response.request) from e

    def health(self) -> Dict[str, Any]:
        return self._json(self.http.get("/api/health"))

    def list_sessions(self) -> List[Dict[str, Any]]:
        return self._json(self.http.get("/api/sessions")).get("sessions") or []

    def create_session(self, name: Optional[str] = None) -> Dict[str, Any]:
        return self._json(self.http.post("/api/sessions", json={"name": name}))["session"]

    def delete_session(self, session_id: int) -> None:
        self._json(self.http.delete(f"/api/sessions/{session_id}"))

    def list_messages(self, session_id: int) -> List[Dict[str, Any]]:
        data = self._json(self.http.get("/api/messages", params={"sessionId": session_id}))
        return data.get("messages") or []

    def send_message(self, session_id: int, content: str) -> List[Dict[str, Any]]:
        data = self._json(self.http.post("/api/messages", json={"sessionId": session_id, "content": content}))
        return data.get("messages") or []


def split_code_segments(content: str) -> List[Tuple[str, str]]:
    """Split message text on ``` fences into ("text" | "code", part) pairs.

    Odd-numbered parts sit between fences and are code.
    """
    if CODE_FENCE not in content:
        return [("text", content)]
    return [
        ("code" if index % 2 == 1 else "text", part)
        for index, part in enumerate(content.split(CODE_FENCE))
    ]


def session_label(session: Dict[str, Any]) -> str:
    return session.get("name") or f"Chat {session['id']}"


def _local_id() -> int:
    return int(time.time() * 1000)


class ChatState:
    """View state of the chat page, independent of the UI toolkit.

    Holds the session list, the selected session, the current thread and the
    sending flag. ``error`` carries a message the page should show the user.
    """

    def __init__(self, api: ChatApiClient):
        self.api = api
        self.sessions: List[Dict[str, Any]] = []
        self.selected_session_id: Optional[int] = None
        self.messages: List[Dict[str, Any]] = []
        self.sending = False
        self.error: Optional[str] = None

    def pop_error(self) -> Optional[str]:
        error, self.error = self.error, None
        return error

    def load(self) -> None:
        try:
            self.sessions = self.api.list_sessions()
        except httpx.HTTPError as e:
            logger.error(f"Error loading sessions: {e}")
            return
        if self.sessions:
            self.select(self.sessions[0]["id"])

    def fetch_messages(self, session_id: int) -> None:
        try:
            self.messages = self.api.list_messages(session_id)
        except httpx.HTTPError as e:
            logger.error(f"Error loading messages: {e}")
            self.messages = []

    def select(self, session_id: int) -> None:
        self.selected_session_id = session_id
        self.fetch_messages(session_id)

    def default_chat_name(self) -> str:
        return f"Chat {len(self.sessions) + 1}"

    def create_chat(self, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        name = (name or "").strip() or self.default_chat_name()
        try:
            session = self.api.create_session(name)
        except httpx.HTTPError as e:
            logger.error(f"Error creating session: {e}")
            self.error = "Failed to create chat"
            return None
        self.sessions = [session, *self.sessions]
        self.selected_session_id = session["id"]
        self.messages = []
        return session

    def delete_chat(self, session_id: int) -> None:
        try:
            self.api.delete_session(session_id)
        except httpx.HTTPError as e:
            logger.error(f"Error deleting session: {e}")
            return
        self.sessions = [s for s in self.sessions if s["id"] != session_id]
        if self.selected_session_id == session_id:
            if self.sessions:
                self.select(self.sessions[0]["id"])
            else:
                self.selected_session_id = None
                self.messages = []

    def begin_send(self, text: str) -> Optional[str]:
        """Validate and optimistically append the user's message.

        Returns the text to send, or None when nothing should be sent.
        """
        text = (text or "").strip()
        if not text or self.sending:
            return None
        if self.selected_session_id is None:
            self.error = "Please create a chat first"
            return None
        self.sending = True
        self.messages = [*self.messages, {"id": _local_id(), "role": "user", "content": text}]
        return text

    def finish_send(self, text: str) -> None:
        try:
            self.messages = self.api.send_message(self.selected_session_id, text)
        except httpx.HTTPError as e:
            logger.error(f"Send error: {e}")
            self.messages = [
                *self.messages,
                {"id": _local_id() + 1, "role": "assistant", "content": SEND_ERROR_TEXT},
            ]
        finally:
            self.sending = False

    def send(self, text: str) -> None:
        pending = self.begin_send(text)
        if pending is not None:
            self.finish_send(pending)
