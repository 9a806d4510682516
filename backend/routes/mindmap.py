import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from dependencies import feature_store, get_documents, get_session_or_404, generation_http_error
from models.schemas import MindMapRequest, OutlineRequest, OutlineNode
from models.sessions import MindMapSession
from rate_limiter import limiter
from services import courses_service, gemini_service, outline_service
from services.gemini_service import GenerationError
from services.session_store import SessionStore, SessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/mindmaps")

mindmap_store = feature_store("mindmaps")


def _with_tree(session: MindMapSession) -> dict:
    tree = outline_service.parse_outline(session.markdown)
    return {**session.model_dump(), "tree": tree.model_dump()}


@router.post("")
@limiter.limit("10/minute; 100/hour; 500/day")
async def generate_mind_map(request: Request, payload: MindMapRequest, store: SessionStore = Depends(mindmap_store)):
    """Generates a markdown outline from a course, pasted text or a bare topic."""
    topic = payload.topic
    if payload.course_id:
        course = await courses_service.find_course(get_documents(request), payload.course_id)
        if course is None:
            raise HTTPException(status_code=404, detail="Course not found.")
        content, topic = course.content or "", topic or course.name
    elif payload.text:
        content = payload.text
    elif topic:
        content = topic
    else:
        raise HTTPException(status_code=400, detail="A topic, course or text is required.")

    token = store.begin_generation()
    try:
        markdown = await gemini_service.generate_mind_map(content, topic)
    except GenerationError as e:
        logger.error("Mind map generation failed: %s", e)
        raise generation_http_error(e)

    session = store.commit_generated(token, MindMapSession(
        title=topic or outline_service.parse_outline(markdown).label,
        markdown=markdown,
        topic=topic,
    ))
    if session is None:
        raise HTTPException(status_code=409, detail="Mind map generation was superseded.")
    return _with_tree(session)


@router.post("/parse", response_model=OutlineNode)
async def parse_outline(payload: OutlineRequest):
    """Renders any markdown outline as a tree, without storing it."""
    return outline_service.parse_outline(payload.markdown)


@router.get("", response_model=list[MindMapSession])
async def list_mind_maps(store: SessionStore = Depends(mindmap_store)):
    return store.sessions()


@router.post("/reset")
async def reset_mind_map(store: SessionStore = Depends(mindmap_store)):
    store.reset()
    return {"active_id": None}


@router.get("/{map_id}")
async def get_mind_map(map_id: str, store: SessionStore = Depends(mindmap_store)):
    try:
        session = await store.load(map_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Mind map not found.")
    return _with_tree(session)


@router.delete("/{map_id}")
async def delete_mind_map(map_id: str, store: SessionStore = Depends(mindmap_store)):
    get_session_or_404(store, map_id)
    await store.delete(map_id)
    return {"deleted": True}
