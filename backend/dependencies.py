from typing import Optional

from fastapi import Header, HTTPException, Request

from services.auth_service import AccessPolicy
from services.gemini_service import GenerationError, QuotaExceededError, InvalidApiKeyError
from services.session_store import SessionRegistry, SessionStore, SessionNotFound


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The signed-in student, as forwarded by the auth layer in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=400, detail="Missing X-User-Id header.")
    return x_user_id.strip()


def get_user_email(x_user_email: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_email.strip().lower() if x_user_email else None


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_documents(request: Request):
    return request.app.state.sessions.documents


def get_access_policy(request: Request) -> AccessPolicy:
    return request.app.state.access_policy


def feature_store(feature: str):
    """Dependency factory returning the caller's SessionStore for one feature."""
    async def _store(request: Request, x_user_id: Optional[str] = Header(None)) -> SessionStore:
        user_id = get_user_id(x_user_id)
        return await get_registry(request).get(user_id, feature)

    return _store


def get_session_or_404(store: SessionStore, session_id: str):
    try:
        return store.get(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found.")


def generation_http_error(e: GenerationError) -> HTTPException:
    """Gemini failures as the feature's error banner sees them."""
    if isinstance(e, QuotaExceededError):
        return HTTPException(status_code=429, detail=e.message)
    if isinstance(e, InvalidApiKeyError):
        return HTTPException(status_code=502, detail=e.message)
    return HTTPException(status_code=500, detail=e.message)
