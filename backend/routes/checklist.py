import os
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from dependencies import feature_store, get_documents, get_session_or_404, generation_http_error
from models.schemas import ChecklistRequest, ToggleRequest
from models.sessions import ChecklistSession
from rate_limiter import limiter
from services import checklist_service, courses_service, gemini_service
from services.checklist_service import ItemNotFound
from services.gemini_service import GenerationError
from services.session_store import SessionStore, SessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/checklists")

checklist_store = feature_store("checklists")


def _with_items(session: ChecklistSession, items) -> ChecklistSession:
    return session.model_copy(update={"checklist": session.checklist.model_copy(update={"items": items})})


@router.post("", response_model=ChecklistSession)
@limiter.limit("10/minute; 100/hour; 500/day")
async def generate_checklist(request: Request, payload: ChecklistRequest, store: SessionStore = Depends(checklist_store)):
    """Builds a revision checklist from a library course or from uploaded text."""
    if payload.course_id:
        course = await courses_service.find_course(get_documents(request), payload.course_id)
        if course is None or not course.content:
            raise HTTPException(status_code=400, detail="الرجاء اختيار درس من المكتبة")
        content, title = course.content, course.name
    elif payload.content:
        content = payload.content
        title = os.path.splitext(payload.filename or "Cours")[0]
    else:
        raise HTTPException(status_code=400, detail="الرجاء رفع ملف أولاً")

    token = store.begin_generation()
    try:
        checklist = await gemini_service.generate_checklist(content, title)
    except GenerationError as e:
        logger.error("Checklist generation failed: %s", e)
        raise generation_http_error(e)

    checklist = checklist.model_copy(update={"items": checklist_service.normalize_items(checklist.items)})
    session = store.commit_generated(token, ChecklistSession(title=checklist.title, checklist=checklist))
    if session is None:
        raise HTTPException(status_code=409, detail="Checklist generation was superseded.")
    return session


@router.get("", response_model=list[ChecklistSession])
async def list_checklists(store: SessionStore = Depends(checklist_store)):
    return store.sessions()


@router.post("/reset")
async def reset_active_checklist(store: SessionStore = Depends(checklist_store)):
    store.reset()
    return {"active_id": None}


@router.get("/{checklist_id}", response_model=ChecklistSession)
async def get_checklist(checklist_id: str, store: SessionStore = Depends(checklist_store)):
    try:
        return await store.load(checklist_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Checklist not found.")


@router.post("/{checklist_id}/toggle", response_model=ChecklistSession)
async def toggle_item(checklist_id: str, payload: ToggleRequest, store: SessionStore = Depends(checklist_store)):
    get_session_or_404(store, checklist_id)
    try:
        return store.mutate(
            checklist_id,
            lambda s: _with_items(s, checklist_service.toggle_item(s.checklist.items, payload.item_id)),
        )
    except ItemNotFound:
        raise HTTPException(status_code=404, detail="Checklist item not found.")


@router.post("/{checklist_id}/reset", response_model=ChecklistSession)
async def reset_checklist(checklist_id: str, store: SessionStore = Depends(checklist_store)):
    get_session_or_404(store, checklist_id)
    return store.mutate(checklist_id, lambda s: _with_items(s, checklist_service.reset_items(s.checklist.items)))


@router.delete("/{checklist_id}")
async def delete_checklist(checklist_id: str, store: SessionStore = Depends(checklist_store)):
    get_session_or_404(store, checklist_id)
    await store.delete(checklist_id)
    return {"deleted": True}
