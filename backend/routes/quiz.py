import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from dependencies import feature_store, get_documents, get_session_or_404, generation_http_error
from models.schemas import QuizRequest, AnswerRequest, NavigateRequest
from models.sessions import QuizSession
from rate_limiter import limiter
from services import courses_service, gemini_service, quiz_service
from services.gemini_service import GenerationError
from services.quiz_service import QuizStateError
from services.session_store import SessionStore, SessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/quizzes")

quiz_store = feature_store("quizzes")


def _quiz_title(payload: QuizRequest) -> str:
    config = payload.config
    if config.source_type == "subject" and config.subject:
        return config.subject
    if payload.file is not None:
        return payload.file.name
    return "اختبار"


@router.post("", response_model=QuizSession)
@limiter.limit("10/minute; 100/hour; 500/day")
async def generate_quiz(request: Request, payload: QuizRequest, store: SessionStore = Depends(quiz_store)):
    """
    Generates a new quiz and makes it the active one. If the student resets
    or starts another quiz before Gemini answers, this result is dropped.
    """
    config = payload.config
    if config.source_type == "subject" and not config.subject:
        raise HTTPException(status_code=400, detail="A subject is required.")
    if config.source_type == "file" and payload.file is None:
        raise HTTPException(status_code=400, detail="A file is required.")
    if payload.file is not None:
        # Only the file reference is kept on the session
        config = config.model_copy(update={"file": payload.file.ref()})

    token = store.begin_generation()
    sources = await courses_service.load_courses(get_documents(request))
    try:
        questions = await gemini_service.generate_quiz(config, sources, file=payload.file)
    except GenerationError as e:
        logger.error("Quiz generation failed: %s", e)
        raise generation_http_error(e)

    session = store.commit_generated(token, QuizSession(
        title=_quiz_title(payload),
        config=config,
        questions=questions,
    ))
    if session is None:
        raise HTTPException(status_code=409, detail="Quiz generation was superseded.")
    return session


@router.get("", response_model=list[QuizSession])
async def list_quizzes(store: SessionStore = Depends(quiz_store)):
    return store.sessions()


@router.post("/reset")
async def reset_quiz(store: SessionStore = Depends(quiz_store)):
    """Back to the setup screen; an in-flight generation will be discarded."""
    store.reset()
    return {"active_id": None}


@router.get("/{quiz_id}", response_model=QuizSession)
async def get_quiz(quiz_id: str, store: SessionStore = Depends(quiz_store)):
    """Resumes a quiz exactly as it was stored."""
    try:
        return await store.load(quiz_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Quiz not found.")


def _apply(store: SessionStore, quiz_id: str, transform) -> QuizSession:
    get_session_or_404(store, quiz_id)
    try:
        return store.mutate(quiz_id, transform)
    except QuizStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{quiz_id}/answers", response_model=QuizSession)
async def select_answer(quiz_id: str, payload: AnswerRequest, store: SessionStore = Depends(quiz_store)):
    return _apply(store, quiz_id, lambda s: quiz_service.select_answer(s, payload.question_id, payload.option_index))


@router.post("/{quiz_id}/navigate", response_model=QuizSession)
async def navigate(quiz_id: str, payload: NavigateRequest, store: SessionStore = Depends(quiz_store)):
    return _apply(store, quiz_id, lambda s: quiz_service.go_to_question(s, payload.index))


@router.post("/{quiz_id}/finish", response_model=QuizSession)
async def finish(quiz_id: str, store: SessionStore = Depends(quiz_store)):
    return _apply(store, quiz_id, quiz_service.finish_quiz)


@router.get("/{quiz_id}/review")
async def review(quiz_id: str, store: SessionStore = Depends(quiz_store)):
    session = get_session_or_404(store, quiz_id)
    return {
        "score": session.score,
        "total": len(session.questions),
        "percentage": session.percentage,
        "score_out_of_20": session.score_out_of_20,
        "questions": quiz_service.review(session),
    }


@router.delete("/{quiz_id}")
async def delete_quiz(quiz_id: str, store: SessionStore = Depends(quiz_store)):
    get_session_or_404(store, quiz_id)
    await store.delete(quiz_id)
    return {"deleted": True}
