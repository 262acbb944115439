"""
Document intake shared by both tools: store the upload, extract its text,
then record the outcome on the document and in the OCR usage counters.
"""

import logging
from typing import Optional

from .ingest import RemoteOCRClient, extract_document_text
from .schemas import DocumentStatus
from .storage import SessionRepository, UsageTracker

logger = logging.getLogger(__name__)


async def ingest_document(
    repo: SessionRepository,
    session_id: str,
    document,
    data: bytes,
    mime_type: Optional[str] = None,
    tracker: Optional[UsageTracker] = None,
    usage_session_id: Optional[str] = None,
    ocr: Optional[RemoteOCRClient] = None,
):
    """
    Add `document` to the session, fill in its text and return it.

    A failed extraction still stores the document, with the placeholder
    text and status "error". Returns None if the session does not exist.
    """
    document.status = DocumentStatus.PROCESSING
    if repo.add_document(session_id, document) is None:
        return None

    result = await extract_document_text(data, document.name, mime_type=mime_type, ocr=ocr)

    updates = {
        "content": result.text,
        "page_count": result.page_count,
        "status": DocumentStatus.READY if result.ok else DocumentStatus.ERROR,
    }
    if "metadata" in type(document).model_fields:
        updates["metadata"] = {**(document.metadata or {}), **result.metadata, "extraction_method": result.method}

    session = repo.update_document(session_id, document.id, updates)
    if session is None:
        logger.warning(f"Document {document.id} disappeared from session {session_id} during extraction")
        return None

    if result.ok and tracker is not None and usage_session_id:
        tracker.record_ocr(1, result.page_count, usage_session_id)

    return next(d for d in session.documents if d.id == document.id)
