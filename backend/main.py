import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from rate_limiter import limiter

import settings
from models.sessions import ChatSession, QuizSession, ChecklistSession, FlashcardSession, MindMapSession
from services.auth_service import AccessPolicy
from services.session_store import InMemoryDocumentStore, SessionRegistry
from routes import upload, chat, quiz, flashcards, checklist, mindmap, mnemonics, courses

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# feature name (also the Firestore sub-collection) -> (session model, keep one)
FEATURES = {
    "sessions": (ChatSession, True),
    "quizzes": (QuizSession, False),
    "checklists": (ChecklistSession, False),
    "flashcards": (FlashcardSession, False),
    "mindmaps": (MindMapSession, False),
}


def _document_store():
    if settings.SESSION_BACKEND == "firestore":
        from services.firestore_service import FirestoreDocumentStore, init_firebase_admin

        init_firebase_admin(settings.FIREBASE_CREDENTIALS, settings.FIREBASE_PROJECT_ID)
        return FirestoreDocumentStore()
    logger.warning("SESSION_BACKEND=memory: sessions are not persisted across restarts")
    return InMemoryDocumentStore()


def create_app(documents=None, access_policy: AccessPolicy | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Let pending fire-and-forget writes land before shutting down
        await app.state.sessions.flush()

    app = FastAPI(title="Paramed Study API", lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.state.sessions = SessionRegistry(
        documents if documents is not None else _document_store(),
        FEATURES,
        max_stores=settings.SESSION_CACHE_SIZE,
    )
    app.state.access_policy = access_policy or AccessPolicy.from_emails(
        settings.ADMIN_EMAILS, settings.SUPERVISOR_EMAILS
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_origin_regex=r"^https://[a-zA-Z0-9-]+\.vercel\.app$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-Id"],
    )

    for module in (upload, chat, quiz, flashcards, checklist, mindmap, mnemonics, courses):
        app.include_router(module.router, prefix="/api")

    @app.get("/api/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()
