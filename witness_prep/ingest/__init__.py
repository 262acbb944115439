"""
Document ingest: plain-text extraction for uploaded case documents.
"""

from .base import ExtractionResult, DocumentExtractor, EXTRACTION_FAILED_PLACEHOLDER, normalize_text
from .factory import extract_document_text, detect_mime_type, is_supported
from .ocr import RemoteOCRClient, parse_ocr_payload

__all__ = [
    "ExtractionResult", "DocumentExtractor", "EXTRACTION_FAILED_PLACEHOLDER", "normalize_text",
    "extract_document_text", "detect_mime_type", "is_supported",
    "RemoteOCRClient", "parse_ocr_payload",
]
