import asyncio
import logging
import uuid
from fastapi import APIRouter, UploadFile, HTTPException, Request
from rate_limiter import limiter
from services import file_service
from services.file_service import ExtractionError
from models.schemas import UploadResponse

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@router.post("/upload", response_model=UploadResponse)
@limiter.limit("5/minute; 50/hour; 200/day")
async def upload_document(request: Request, file: UploadFile):
    """
    Accepts a PDF, DOCX or plain-text course file and returns its text, ready
    to be attached to a chat prompt or used as a quiz/flashcard/checklist source.
    The temp file is always deleted in the finally block.
    """
    try:
        kind = file_service.detect_kind(file.filename, file.content_type)
    except ExtractionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if file.size and file.size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large. Maximum size is 20MB.")

    if kind == "pdf":
        # Validate file signature (magic number)
        header = await file.read(5)
        if header != b"%PDF-":
            raise HTTPException(status_code=400, detail="Invalid PDF file format.")
        await file.seek(0)

    tmp_path = await file_service.save_temp_file(file)
    try:
        # CPU-bound extraction runs in a thread pool
        raw_text, markdown_content, page_count = await asyncio.to_thread(
            file_service.extract_text, tmp_path, kind
        )
    except ExtractionError as e:
        logger.warning("Extraction failed for %s: %s", file.filename, e)
        if str(e) == "empty_text":
            raise HTTPException(
                status_code=422,
                detail="empty_text: No extractable text found. The document may be image-only or scanned.",
            )
        raise HTTPException(status_code=422, detail=str(e))
    finally:
        file_service.delete_file(tmp_path)

    return UploadResponse(
        markdown_content=markdown_content,
        raw_text=raw_text,
        filename=file.filename or "upload",
        page_count=page_count,
        source_id=str(uuid.uuid4()),
    )
