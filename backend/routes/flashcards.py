import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from dependencies import feature_store, get_documents, get_session_or_404, generation_http_error
from models.schemas import FlashcardsRequest, NavigateRequest
from models.sessions import FlashcardSession
from rate_limiter import limiter
from services import courses_service, flashcard_service, gemini_service
from services.flashcard_service import CardIndexError
from services.gemini_service import GenerationError
from services.session_store import SessionStore, SessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/flashcards")

flashcard_store = feature_store("flashcards")


@router.post("", response_model=FlashcardSession)
@limiter.limit("10/minute; 100/hour; 500/day")
async def create_flashcards(request: Request, payload: FlashcardsRequest, store: SessionStore = Depends(flashcard_store)):
    """Generates a deck from a library subject or an uploaded file."""
    config = payload.config
    if config.source_type == "subject" and not config.subject:
        raise HTTPException(status_code=400, detail="A subject is required.")
    if config.source_type == "file" and payload.file is None:
        raise HTTPException(status_code=400, detail="A file is required.")
    if payload.file is not None:
        config = config.model_copy(update={"file": payload.file.ref()})

    token = store.begin_generation()
    sources = await courses_service.load_courses(get_documents(request))
    try:
        cards = await gemini_service.generate_flashcards(config, sources, file=payload.file)
    except GenerationError as e:
        logger.error("Flashcard generation failed: %s", e)
        raise generation_http_error(e)

    title = config.subject if config.source_type == "subject" else (payload.file.name if payload.file else "فلاش كاردس")
    session = store.commit_generated(token, FlashcardSession(title=title, config=config, cards=cards))
    if session is None:
        raise HTTPException(status_code=409, detail="Flashcard generation was superseded.")
    return session


@router.get("", response_model=list[FlashcardSession])
async def list_decks(store: SessionStore = Depends(flashcard_store)):
    return store.sessions()


@router.post("/reset")
async def reset_deck(store: SessionStore = Depends(flashcard_store)):
    store.reset()
    return {"active_id": None}


@router.get("/{deck_id}", response_model=FlashcardSession)
async def get_deck(deck_id: str, store: SessionStore = Depends(flashcard_store)):
    try:
        return await store.load(deck_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Deck not found.")


@router.post("/{deck_id}/navigate", response_model=FlashcardSession)
async def navigate(deck_id: str, payload: NavigateRequest, store: SessionStore = Depends(flashcard_store)):
    get_session_or_404(store, deck_id)
    try:
        return store.mutate(deck_id, lambda s: flashcard_service.go_to_card(s, payload.index))
    except CardIndexError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{deck_id}")
async def delete_deck(deck_id: str, store: SessionStore = Depends(flashcard_store)):
    get_session_or_404(store, deck_id)
    await store.delete(deck_id)
    return {"deleted": True}
