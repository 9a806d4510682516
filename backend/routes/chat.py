import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from dependencies import feature_store, get_documents, get_session_or_404, generation_http_error
from models.schemas import ChatRequest, RenameRequest
from models.sessions import ChatSession
from rate_limiter import limiter
from services import chat_service, courses_service, gemini_service
from services.gemini_service import GenerationError
from services.session_store import SessionStore, SessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat")

chat_store = feature_store("sessions")


@router.get("/sessions", response_model=list[ChatSession])
async def list_sessions(store: SessionStore = Depends(chat_store)):
    """All chat threads, newest first. A student always has at least one."""
    sessions = store.sessions()
    if not sessions:
        store.create(ChatSession())
        sessions = store.sessions()
    if store.active_id is None:
        store.active_id = sessions[0].id
    return sessions


@router.post("/sessions", response_model=ChatSession)
async def create_session(store: SessionStore = Depends(chat_store)):
    return store.create(ChatSession())


@router.get("/sessions/{session_id}", response_model=ChatSession)
async def get_session(session_id: str, store: SessionStore = Depends(chat_store)):
    try:
        return await store.load(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found.")


@router.patch("/sessions/{session_id}", response_model=ChatSession)
async def rename_session(session_id: str, payload: RenameRequest, store: SessionStore = Depends(chat_store)):
    get_session_or_404(store, session_id)
    return store.mutate(session_id, lambda s: chat_service.rename(s, payload.title))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(chat_store)):
    """Deleting the last remaining thread empties it instead."""
    get_session_or_404(store, session_id)
    cleared = await store.delete(session_id)
    return {"deleted": cleared is None, "session": cleared, "active_id": store.active_id}


async def _prepare_turn(request: Request, session_id: str, payload: ChatRequest, store: SessionStore):
    session = get_session_or_404(store, session_id)
    history = list(session.messages)
    user_message = chat_service.make_message(
        "user", payload.prompt, attachments=[a.name for a in payload.attachments]
    )
    store.mutate(session_id, lambda s: chat_service.append_message(s, user_message))
    store.active_id = session_id
    epoch = store.epoch(session_id)

    courses = await courses_service.load_courses(get_documents(request))
    return history, [*payload.attachments, *courses], epoch


def _append_reply(store: SessionStore, session_id: str, epoch: int, content: str, is_error: bool = False):
    # Dropped if the thread was deleted or cleared while Gemini was answering
    reply = chat_service.make_message("model", content, is_error=is_error)
    return store.mutate_if_current(session_id, epoch, lambda s: chat_service.append_message(s, reply))


@router.post("/sessions/{session_id}/messages", response_model=ChatSession)
@limiter.limit("15/minute; 100/hour; 500/day")
async def send_message(
    request: Request,
    session_id: str,
    payload: ChatRequest,
    store: SessionStore = Depends(chat_store),
):
    """Sends one prompt and returns the thread with Gemini's reply appended."""
    history, sources, epoch = await _prepare_turn(request, session_id, payload, store)
    try:
        answer = await gemini_service.generate_chat_response(payload.prompt, sources, history)
    except GenerationError as e:
        _append_reply(store, session_id, epoch, e.message, is_error=True)
        raise generation_http_error(e)

    updated = _append_reply(store, session_id, epoch, answer)
    if updated is None:
        raise HTTPException(status_code=409, detail="Session was deleted or cleared during generation.")
    return updated


@router.post("/sessions/{session_id}/stream")
@limiter.limit("15/minute; 100/hour; 500/day")
async def stream_message(
    request: Request,
    session_id: str,
    payload: ChatRequest,
    store: SessionStore = Depends(chat_store),
):
    """
    Streams Gemini's reply as plain text. The full reply is stored on the
    thread once the stream ends; a failure mid-stream is stored as an error
    message and reported inline.
    """
    history, sources, epoch = await _prepare_turn(request, session_id, payload, store)

    async def generator():
        chunks: list[str] = []
        try:
            async for chunk in gemini_service.stream_chat(payload.prompt, sources, history):
                chunks.append(chunk)
                yield chunk
        except GenerationError as e:
            _append_reply(store, session_id, epoch, e.message, is_error=True)
            yield f"\n\n[{e.message}]"
            return
        _append_reply(store, session_id, epoch, "".join(chunks) or gemini_service.CHAT_FALLBACK_REPLY)

    return StreamingResponse(generator(), media_type="text/plain", headers={"X-Session-Id": session_id})
