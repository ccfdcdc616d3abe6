from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, HTTPException, status, Query, APIRouter, Body, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from chatapp.assistant import Assistant
from chatapp.config import Settings, get_settings
from chatapp.database import ChatStore, StoreError, normalize_name
from chatapp.models import ChatSession, Message

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ["GET", "POST", "OPTIONS", "DELETE"]
ALLOWED_HEADERS = ["Content-Type", "Authorization"]

router = APIRouter(prefix="/api")  ## all chat endpoints live under /api


class SessionCreate(BaseModel):  # body of POST /api/sessions, every field optional
    name: Optional[str] = None


class MessageCreate(BaseModel):  # body of POST /api/messages
    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(..., alias="sessionId")
    content: str


def session_out(chat: ChatSession) -> Dict[str, Any]:
    return {
        "id": chat.id,
        "name": chat.name,
        "created_at": chat.created_at.isoformat() if chat.created_at else None,
    }


def message_out(m: Message) -> Dict[str, Any]:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


def get_store(request: Request) -> ChatStore:
    return request.app.state.store


def get_assistant(request: Request) -> Assistant:
    return request.app.state.assistant


@router.get("/health")
def health(request: Request):
    return {"ok": True, "allowed_origins": request.app.state.settings.allowed_origins}


@router.get("/sessions")
def list_sessions(store: ChatStore = Depends(get_store)):
    try:
        return {"sessions": [session_out(s) for s in store.list_sessions()]}
    except Exception as e:
        logger.error(f"GET /api/sessions error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch sessions")


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
def create_session(payload: Optional[SessionCreate] = Body(default=None), store: ChatStore = Depends(get_store)):
    name = normalize_name(payload.name if payload else None)
    logger.info(f"Create session requested: name={name!r}")
    try:
        chat = store.create_session(name)
        logger.info(f"Session created: session_id={chat.id}")
        return {"session": session_out(chat)}
    except Exception as e:
        logger.error(f"Failed to create session: {e}")
        raise HTTPException(status_code=500, detail="Failed to create session")


@router.delete("/sessions/{session_id}")
def delete_session(session_id: int, store: ChatStore = Depends(get_store)):
    logger.info(f"Delete session requested: session_id={session_id}")
    try:
        store.delete_session(session_id)
        return {"success": True}
    except Exception as e:
        logger.error(f"DELETE /api/sessions error: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete session")


@router.get("/messages")
def list_messages(session_id: int = Query(..., alias="sessionId"), store: ChatStore = Depends(get_store)):
    try:
        return {"messages": [message_out(m) for m in store.list_messages(session_id)]}
    except Exception as e:
        logger.error(f"GET /api/messages error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@router.post("/messages")
def send_message(
    payload: MessageCreate,
    store: ChatStore = Depends(get_store),
    assistant: Assistant = Depends(get_assistant),
):
    logger.info(f"Chat request: session_id={payload.session_id}, content_len={len(payload.content)}")
    try:
        if store.get_session(payload.session_id) is None:
            logger.error(f"Session not found: session_id={payload.session_id}")
            raise HTTPException(status_code=404, detail="Session not found.")
        store.insert_message(payload.session_id, "user", payload.content)
        history = store.list_messages(payload.session_id)
        reply = assistant.get_reply(history)
        store.insert_message(payload.session_id, "assistant", reply)
        return {"messages": [message_out(m) for m in store.list_messages(payload.session_id)]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"POST /api/messages error: {e}")
        raise HTTPException(status_code=500, detail="Failed to send message")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ChatStore] = None,
    assistant: Optional[Assistant] = None,
) -> FastAPI:
    """Build the API with its store, assistant and origin allow-list.

    The store is opened when the app starts and closed when it stops.
    """
    settings = settings or get_settings()
    store = store or ChatStore(settings.database_url, echo=settings.db_echo)
    assistant = assistant or Assistant.from_settings(settings)
    allowed_origins = set(settings.allowed_origins)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.open()
        logger.info(f"Allowed origins: {settings.allowed_origins}")
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="Chat API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.assistant = assistant

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
    )

    # registered after CORSMiddleware, so it runs first and rejects before any route
    @app.middleware("http")
    async def enforce_origin_allow_list(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and origin not in allowed_origins:
            logger.warning(f"CORS origin denied: {origin} {request.method} {request.url.path}")
            return JSONResponse({"detail": f"CORS origin denied: {origin}"}, status_code=403)
        # CORSMiddleware ignores requests without an Origin header (curl, server-to-server)
        if not origin and request.method == "OPTIONS":
            return Response(status_code=200, headers={
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
                "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
            })
        return await call_next(request)

    app.include_router(router)
    return app


settings = get_settings()
logging.basicConfig(level=settings.log_level, format='%(asctime)s %(levelname)s %(message)s')

app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
