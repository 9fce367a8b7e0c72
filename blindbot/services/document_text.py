"""
Training and spec-sheet document text extraction for the enrichment tasks.
"""
import logging
from io import BytesIO
from typing import Optional
from urllib.parse import quote

import httpx
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from blindbot.core.config import get_settings
from blindbot.core.http_client import guess_mime_type

logger = logging.getLogger(__name__)


def extract_pdf_text(pdf_bytes: bytes) -> str:
    reader = PdfReader(BytesIO(pdf_bytes))
    pages = []
    for page in reader.pages:
        page_text = page.extract_text() or ""
        if page_text.strip():
            pages.append(page_text.strip())
    return "\n\n".join(pages)


def fetch_document_text(url: Optional[str], max_chars: Optional[int] = None) -> Optional[str]:
    """
    Download a PDF or plain-text document and return its text.

    Returns None for a missing URL, a failed download or an unreadable file;
    callers treat that as "no document".
    """
    if not url:
        return None

    settings = get_settings()
    max_chars = max_chars or settings.training_document_max_chars

    try:
        response = httpx.get(
            quote(url, safe=":/?&=%#@+,;~"),
            timeout=settings.media_download_timeout,
            follow_redirects=True
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"Document download failed for {url}: {e}")
        return None

    mime_type = guess_mime_type(url, response.headers.get("content-type"))
    try:
        if mime_type == "application/pdf" or response.content[:5] == b"%PDF-":
            text = extract_pdf_text(response.content)
        elif mime_type.startswith("text/"):
            text = response.text
        else:
            logger.warning(f"Unsupported document type {mime_type} for {url}")
            return None
    except PdfReadError as e:
        logger.warning(f"Could not read PDF {url}: {e}")
        return None

    text = text.strip()
    if not text:
        return None
    return text[:max_chars]
