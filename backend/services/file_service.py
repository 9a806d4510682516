import os
import logging
import tempfile

from docx import Document
from fastapi import UploadFile

from services import pdf_service

logger = logging.getLogger(__name__)

PDF_TYPES = {"application/pdf"}
DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
TEXT_TYPES = {"text/plain", "text/markdown"}


class ExtractionError(ValueError):
    """An upload could not be turned into text."""


async def save_temp_file(file: UploadFile) -> str:
    """
    Async-safe: reads the uploaded file bytes without blocking the event loop.
    Returns the path to the saved temp file.
    """
    suffix = os.path.splitext(file.filename or "upload")[1] or ".bin"
    tmp_fd, tmp_path = tempfile.mkstemp(suffix=suffix)
    with os.fdopen(tmp_fd, "wb") as tmp:
        tmp.write(await file.read())
    return tmp_path


def delete_file(path: str) -> None:
    """
    Deletes the file at the given path. Missing files and (on Windows) files
    whose handle is still held are left to the OS temp cleanup.
    """
    try:
        os.remove(path)
    except (FileNotFoundError, PermissionError):
        pass


def detect_kind(filename: str, content_type: str | None) -> str:
    name = (filename or "").lower()
    content_type = (content_type or "").split(";")[0].strip().lower()
    if name.endswith(".pdf") or content_type in PDF_TYPES:
        return "pdf"
    if name.endswith(".docx") or content_type in DOCX_TYPES or "wordprocessing" in content_type:
        return "docx"
    if name.endswith((".txt", ".md")) or content_type in TEXT_TYPES:
        return "text"
    raise ExtractionError(f"Unsupported file type: {filename or content_type}")


def extract_docx_text(path: str) -> str:
    document = Document(path)
    return "\n".join(p.text for p in document.paragraphs if p.text.strip())


def extract_text(path: str, kind: str) -> tuple[str, str, int]:
    """
    Returns (raw_text, markdown_content, page_count) for a saved upload.
    Blocking; call it through asyncio.to_thread.
    """
    try:
        if kind == "pdf":
            return pdf_service.extract_text_and_markdown(path)
        if kind == "docx":
            text = pdf_service.normalize_text(extract_docx_text(path))
        else:
            with open(path, "rb") as f:
                text = pdf_service.normalize_text(f.read().decode("utf-8", errors="replace"))
    except ValueError as e:
        raise ExtractionError(str(e)) from e
    except Exception as e:
        logger.error("Text extraction failed for %s: %s", path, e)
        raise ExtractionError("corrupt_file") from e

    if not text.strip():
        raise ExtractionError("empty_text")
    return text, text, 1
