import re
import logging
import unicodedata

import fitz  # PyMuPDF (pulled in by pymupdf4llm)
import pymupdf4llm

logger = logging.getLogger(__name__)

_EXTRACT_FLAGS = fitz.TEXT_PRESERVE_WHITESPACE | fitz.TEXT_DEHYPHENATE

# Ligature glyphs (standard and Private Use Area variants) some course PDFs emit
_LIGATURES = {
    "\ufb00": "ff", "\ufb01": "fi", "\ufb02": "fl", "\ufb03": "ffi", "\ufb04": "ffl",
    "\ufb05": "st", "\ufb06": "st",
    "\uf000": "ff", "\uf001": "fi", "\uf002": "fl", "\uf003": "ffi", "\uf004": "ffl",
    "\u0000": "",
}

# Pages with less text than this are treated as scans
MIN_PAGE_TEXT = 20


def normalize_text(text: str) -> str:
    """Folds ligature and compatibility characters and drops control characters."""
    for char, replacement in _LIGATURES.items():
        text = text.replace(char, replacement)
    text = unicodedata.normalize("NFKC", text)
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)


def clean_text(text: str) -> str:
    """
    normalize_text() plus the PDF font-encoding repairs: 'ti' and 'tt'
    ligatures that some fonts map to punctuation between two letters.
    Only safe on PDF text layers; real punctuation would be rewritten too.
    """
    text = normalize_text(text)
    text = re.sub(r"(?<=[a-zA-Z])[3$;](?=[a-zA-Z])", "ti", text)
    return re.sub(r"(?<=[a-zA-Z])[=,](?=[a-zA-Z])", "tt", text)


def extract_text_and_markdown(file_path: str) -> tuple[str, str, int]:
    """
    Opens a PDF and returns (raw_text, markdown_content, page_count).

    raw_text is the cleaned plain text used as course context; the markdown
    carries '## Page N' headers for display. Raises ValueError('empty_text')
    when no page has extractable text (scanned or image-only PDFs).
    """
    doc = fitz.open(file_path)
    try:
        page_count = len(doc)
        raw_pages = [clean_text(page.get_text(flags=_EXTRACT_FLAGS)) for page in doc]
        if not any(len(p.strip()) >= MIN_PAGE_TEXT for p in raw_pages):
            raise ValueError("empty_text")

        md_pages = []
        for i in range(page_count):
            page_md = clean_text(pymupdf4llm.to_markdown(doc, pages=[i]))
            md_pages.append(f"## Page {i + 1}\n\n{page_md.strip()}")
    finally:
        # Release the handle before the caller deletes the temp file
        doc.close()

    logger.info("Extracted %d pages from %s", page_count, file_path)
    return "\n\n".join(raw_pages), "\n\n".join(md_pages), page_count
