import logging
from fastapi import APIRouter, Request

from dependencies import generation_http_error
from models.schemas import MnemonicRequest, MnemonicResponse
from rate_limiter import limiter
from services import gemini_service
from services.gemini_service import GenerationError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/mnemonics", response_model=MnemonicResponse)
@limiter.limit("10/minute; 100/hour; 500/day")
async def create_mnemonic(request: Request, payload: MnemonicRequest):
    """One-shot memory aid; nothing is stored."""
    try:
        return await gemini_service.generate_mnemonic(payload.topic, payload.language, payload.context)
    except GenerationError as e:
        logger.error("Mnemonic generation failed: %s", e)
        raise generation_http_error(e)
